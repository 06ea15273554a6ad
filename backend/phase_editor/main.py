import logging
from importlib import metadata

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from phase_editor import config
from phase_editor.routes import structures

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DISTRIBUTION = "phase-structure-editor"


def installed_version() -> str:
    """Version of the installed distribution; "dev" when running from an uninstalled tree."""
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "dev"


VERSION = installed_version()

app = FastAPI(title="Phase Structure Editor API", version=VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Structure editor operations (stateless, document in / document out)
app.include_router(structures.router, prefix="/api", tags=["structures"])


@app.on_event("startup")
def on_startup():
    routes = [r for r in app.routes if getattr(r, "path", None)]
    logger.info(
        "Phase Structure Editor API %s started: %d routes, default layout %s/%s",
        VERSION, len(routes), config.DEFAULT_LAYOUT_DIRECTION, config.DEFAULT_NODE_SIZE,
    )


@app.get("/api/health")
def health_check():
    """Which version is running, and the canvas defaults it was configured with"""
    return {
        "app_name": "Phase Structure Editor API",
        "version": VERSION,
        "layout_direction": config.DEFAULT_LAYOUT_DIRECTION,
        "node_size": config.DEFAULT_NODE_SIZE,
        "status": "healthy",
    }
