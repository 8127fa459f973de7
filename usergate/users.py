"""User lifecycle operations guarded by the validation and deletion rules."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .config import PolicySettings
from .database import (
    SERVER_TIMESTAMP,
    ConcurrentModificationError,
    Database,
)
from .models import User
from .policy import can_delete, validate_email, validate_name

logger = logging.getLogger("usergate.users")

MSG_MISSING_CREATE_FIELDS = "이름과 이메일을 모두 입력해주세요."
MSG_INVALID_NAME = "이름에 '{forbidden}'이라는 단어가 포함될 수 없습니다."
MSG_INVALID_EMAIL = "유효한 이메일 형식이 아닙니다. '@'가 포함되어야 합니다."
MSG_MISSING_LOOKUP_NAME = "조회할 사용자 이름이 필요합니다."
MSG_MISSING_UPDATE = "사용자 이름 또는 수정할 데이터가 없습니다."
MSG_MISSING_DELETE_NAME = "삭제할 사용자 이름이 필요합니다."
MSG_PROTECTED_FIELD = "'{field}' 필드는 수정할 수 없습니다."
MSG_NOT_FOUND = "사용자를 찾을 수 없습니다."
MSG_EMBARGO = "가입 후 {minutes}분이 지나지 않은 데이터는 삭제할 수 없습니다."
MSG_REMAINING = "{seconds}초 후에 삭제할 수 있습니다."
MSG_CONFLICT = "다른 요청이 사용자 정보를 먼저 변경했습니다. 다시 시도해주세요."
MSG_CREATED = "안녕하세요, {name}님! 가입을 환영합니다."
MSG_UPDATED = "사용자 정보가 성공적으로 업데이트되었습니다."
MSG_DELETED = "사용자가 성공적으로 삭제되었습니다."

PROTECTED_FIELDS = ("id", "createdAt", "version")


class InvalidUserError(ValueError):
    """Raised when a request is missing data or fails validation."""


class UserNotFoundError(LookupError):
    """Raised when no user matches the requested name."""

    def __init__(self, message: str = MSG_NOT_FOUND) -> None:
        super().__init__(message)


class DeletionEmbargoError(PermissionError):
    """Raised when a user is deleted before the embargo period has elapsed."""

    def __init__(self, message: str, remaining_seconds: int) -> None:
        super().__init__(message)
        self.remaining_seconds = remaining_seconds

    @property
    def remaining_time(self) -> str:
        return MSG_REMAINING.format(seconds=self.remaining_seconds)


class UserConflictError(RuntimeError):
    """Raised when a user changed between lookup and write."""


class UserService:
    """Create, look up, update, and delete users stored in a :class:`Database`."""

    def __init__(self, database: Database, settings: Optional[PolicySettings] = None) -> None:
        self._database = database
        self._settings = settings or PolicySettings()

    @property
    def settings(self) -> PolicySettings:
        return self._settings

    @property
    def _collection(self) -> str:
        return self._settings.collection

    def _check_name(self, name: object) -> None:
        if not validate_name(name, forbidden=self._settings.forbidden_name_substring):
            raise InvalidUserError(
                MSG_INVALID_NAME.format(forbidden=self._settings.forbidden_name_substring)
            )

    @staticmethod
    def _check_email(email: object) -> None:
        if not validate_email(email):
            raise InvalidUserError(MSG_INVALID_EMAIL)

    def create_user(self, name: object, email: object) -> User:
        if not name or not email:
            raise InvalidUserError(MSG_MISSING_CREATE_FIELDS)
        self._check_name(name)
        self._check_email(email)

        document = self._database.insert(
            self._collection,
            {"name": name, "email": email},
            created_at=SERVER_TIMESTAMP,
        )
        user = User.from_document(document)
        logger.info("Created user %s (%s)", user.id, user.name)
        return user

    def find_users(self, name: object) -> List[User]:
        """Return every user whose name matches exactly."""

        if not name:
            raise InvalidUserError(MSG_MISSING_LOOKUP_NAME)
        documents = self._database.query(self._collection, "name", name)
        if not documents:
            raise UserNotFoundError()
        return [User.from_document(document) for document in documents]

    def _find_first(self, name: str) -> User:
        documents = self._database.query(self._collection, "name", name, limit=1)
        if not documents:
            raise UserNotFoundError()
        return User.from_document(documents[0])

    def update_user(self, name: object, fields: Optional[Mapping[str, Any]]) -> User:
        """Apply a partial update to the first user called ``name``.

        ``name`` and ``email`` are validated whenever they are present in
        ``fields``. Server-managed fields cannot be overwritten.
        """

        if not name or not fields:
            raise InvalidUserError(MSG_MISSING_UPDATE)

        for protected in PROTECTED_FIELDS:
            if protected in fields:
                raise InvalidUserError(MSG_PROTECTED_FIELD.format(field=protected))
        if "email" in fields:
            self._check_email(fields["email"])
        if "name" in fields:
            self._check_name(fields["name"])

        user = self._find_first(str(name))
        changes: Dict[str, Any] = dict(fields)
        try:
            document = self._database.update_by_id(
                self._collection,
                user.id,
                changes,
                expected_version=user.version,
            )
        except ConcurrentModificationError as exc:
            logger.info("Update of user %s lost a race: %s", user.id, exc)
            raise UserConflictError(MSG_CONFLICT) from exc

        logger.info("Updated user %s (fields: %s)", user.id, ", ".join(sorted(changes)))
        return User.from_document(document)

    def delete_user(self, name: object) -> User:
        """Delete the first user called ``name`` once the embargo has elapsed."""

        if not name:
            raise InvalidUserError(MSG_MISSING_DELETE_NAME)

        user = self._find_first(str(name))
        if user.created_at is None:
            logger.warning(
                "User %s has no creation timestamp; allowing deletion without embargo", user.id
            )

        embargo = self._settings.deletion_embargo_seconds
        decision = can_delete(user.created_at, self._database.now(), embargo_seconds=embargo)
        if not decision.allowed:
            raise DeletionEmbargoError(
                MSG_EMBARGO.format(minutes=_format_minutes(embargo)),
                decision.remaining_seconds,
            )

        try:
            removed = self._database.delete_by_id(
                self._collection,
                user.id,
                expected_version=user.version,
            )
        except ConcurrentModificationError as exc:
            logger.info("Deletion of user %s lost a race: %s", user.id, exc)
            raise UserConflictError(MSG_CONFLICT) from exc

        if not removed:
            raise UserConflictError(MSG_CONFLICT)

        logger.info("Deleted user %s (%s)", user.id, user.name)
        return user

    def list_users(self) -> List[User]:
        return [
            User.from_document(document)
            for document in self._database.list_documents(self._collection)
        ]


def _format_minutes(seconds: int) -> str:
    if seconds % 60 == 0:
        return str(seconds // 60)
    return f"{seconds / 60:g}"


__all__ = [
    "DeletionEmbargoError",
    "InvalidUserError",
    "UserConflictError",
    "UserNotFoundError",
    "UserService",
]
