"""Shared configuration classes for contentops.

This module defines the backend configuration injected into every client,
tracker and transfer component.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

DEFAULT_MAX_CONCURRENT_UPLOADS = 4


@dataclass
class BackendConfig:
    """Configuration for reaching the data backend and the storage proxy.

    All instances of the transfer manager and the trackers receive one of
    these at construction time instead of reading process-wide constants.

    Attributes:
        api_url: Base URL of the data backend (e.g., "https://db.example.com").
        api_key: Static key attached to every backend call.
        storage_url: Base URL of the storage proxy.
        storage_key: Static key attached to every storage call.
        timeout: Request/connection timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
        max_concurrent_uploads: Upload slots per queue, None for unbounded.
    """

    api_url: str
    api_key: str
    storage_url: str = ""
    storage_key: str = ""
    timeout: float = 30.0
    verify_ssl: bool = True
    max_concurrent_uploads: int | None = DEFAULT_MAX_CONCURRENT_UPLOADS

    def __post_init__(self) -> None:
        """Normalize URLs and validate limits."""
        self.api_url = self.api_url.rstrip("/")
        self.storage_url = self.storage_url.rstrip("/")
        if self.max_concurrent_uploads is not None and self.max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be at least 1")

    @property
    def realtime_url(self) -> str:
        """Get the websocket URL of the change feed.

        Returns:
            WebSocket URL with the api key as query parameter.
        """
        url = self.api_url
        if url.startswith("https://"):
            url = "wss://" + url[8:]
        elif url.startswith("http://"):
            url = "ws://" + url[7:]
        return f"{url}/realtime/v1/websocket?apikey={self.api_key}"

    @property
    def is_secure(self) -> bool:
        """Check if the data backend is reached over HTTPS/WSS."""
        return self.api_url.startswith("https://")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackendConfig:
        """Create from a persisted mapping, ignoring unknown keys.

        Raises:
            ValueError: If api_url or api_key is missing.
        """
        if not data.get("api_url") or not data.get("api_key"):
            raise ValueError("api_url and api_key are required")
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known and v is not None}
        if "timeout" in values:
            values["timeout"] = float(values["timeout"])
        if "verify_ssl" in values and isinstance(values["verify_ssl"], str):
            values["verify_ssl"] = values["verify_ssl"].lower() not in ("0", "false", "no")
        if "max_concurrent_uploads" in values:
            limit = int(values["max_concurrent_uploads"])
            values["max_concurrent_uploads"] = limit if limit > 0 else None
        return cls(**values)
