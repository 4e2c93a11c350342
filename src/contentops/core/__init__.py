"""Core module - Shared configuration and types."""

from contentops.core.config import DEFAULT_MAX_CONCURRENT_UPLOADS, BackendConfig
from contentops.core.types import ChangeKind

__all__ = [
    # Config
    "BackendConfig",
    "DEFAULT_MAX_CONCURRENT_UPLOADS",
    # Types
    "ChangeKind",
]
