"""Shared types for contentops.

This module defines enums used by both the change feed and the trackers.
"""

from __future__ import annotations

from enum import Enum


class ChangeKind(str, Enum):
    """Kind of row-level change delivered by the change feed."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
