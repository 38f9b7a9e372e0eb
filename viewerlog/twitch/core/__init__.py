"""Core modules for stream tracking."""

from .config import (
    BOT_SCOPES,
    BROADCASTER_SCOPES,
    TWITCH_DIR,
    TwitchBotSettings,
    get_settings,
    validate_env_vars,
)
from .errors import StreamStateConflict, ViewerlogError
from .logging import setup_logging
from .stream_state import StreamStateTracker
from .view_sessions import ReconcileResult, ViewerSessionReconciler

__all__ = [
    # Settings
    "TwitchBotSettings",
    "get_settings",
    "validate_env_vars",
    # Path Constants
    "TWITCH_DIR",
    # Scope Constants
    "BOT_SCOPES",
    "BROADCASTER_SCOPES",
    # Setup functions
    "setup_logging",
    # Errors
    "ViewerlogError",
    "StreamStateConflict",
    # Session tracking
    "StreamStateTracker",
    "ViewerSessionReconciler",
    "ReconcileResult",
]
