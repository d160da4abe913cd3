"""
RecShelf exception hierarchy.

    RecShelfError (base)
    ├── ImportValidationError - upload rejected before any background work
    └── JobError - expected failure inside a background job
"""

from __future__ import annotations

from typing import Any


class RecShelfError(Exception):
    """Base exception for all RecShelf errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ImportValidationError(RecShelfError):
    """Uploaded file is missing, has the wrong type, or holds no records."""


class JobError(RecShelfError):
    """A background job cannot continue; the message is shown to the user."""
