"""Core infrastructure shared by the rollup and analytics slices."""

from stitchlab.core.config import Settings, get_settings
from stitchlab.core.database import Base, get_db, session_scope
from stitchlab.core.logging import get_logger, request_id_ctx

__all__ = [
    "Base",
    "Settings",
    "get_db",
    "get_logger",
    "get_settings",
    "request_id_ctx",
    "session_scope",
]
