"""Domain models for the user service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Document:
    """A stored document together with its server-managed metadata."""

    id: str
    data: Dict[str, Any]
    created_at: Optional[datetime]
    version: int


@dataclass(frozen=True)
class User:
    """Represents a user record held in the ``users`` collection."""

    id: str
    name: str
    email: Optional[str]
    created_at: Optional[datetime]
    version: int = 1
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Document) -> "User":
        data = dict(document.data)
        name = data.pop("name", "")
        email = data.pop("email", None)
        return cls(
            id=document.id,
            name=str(name) if name is not None else "",
            email=email,
            created_at=document.created_at,
            version=document.version,
            extra=data,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON shape served by the read endpoint."""

        payload: Dict[str, Any] = {"id": self.id}
        payload.update(self.extra)
        payload["name"] = self.name
        if self.email is not None:
            payload["email"] = self.email
        payload["createdAt"] = self.created_at.isoformat() if self.created_at else None
        return payload


__all__ = ["Document", "User"]
