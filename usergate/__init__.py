"""Validated user records served over HTTP and backed by a document database."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .policy import can_delete, validate_email, validate_name


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "can_delete",
    "create_app",
    "resolve_database_path",
    "validate_email",
    "validate_name",
]
