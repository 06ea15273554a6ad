import os
from typing import List

from dotenv import load_dotenv

from phase_editor.services.phase_rules import LAYOUT_DIRECTIONS, NODE_SIZE_PRESETS

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_direction = os.getenv("DEFAULT_LAYOUT_DIRECTION", "TB").upper()
DEFAULT_LAYOUT_DIRECTION = _direction if _direction in LAYOUT_DIRECTIONS else "TB"

_node_size = os.getenv("DEFAULT_NODE_SIZE", "collapsed").lower()
DEFAULT_NODE_SIZE = _node_size if _node_size in NODE_SIZE_PRESETS else "collapsed"


def cors_origins() -> List[str]:
    """Local dev origins plus any listed in CORS_ORIGINS (comma-separated)."""
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    extra = os.getenv("CORS_ORIGINS", "")
    if extra:
        origins.extend(o.strip() for o in extra.split(",") if o.strip())
    return origins
