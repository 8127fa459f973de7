"""HTTP API exposing user creation, lookup, update, and deletion."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import PolicySettings, load_settings_from_env
from .database import Database, StoreError, resolve_database_path
from .users import (
    MSG_CREATED,
    MSG_DELETED,
    MSG_UPDATED,
    DeletionEmbargoError,
    InvalidUserError,
    UserConflictError,
    UserNotFoundError,
    UserService,
)

logger = logging.getLogger("usergate.service")

MSG_MALFORMED_REQUEST = "요청 형식이 올바르지 않습니다."


class CreateUserRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None


class CreateUserResponse(BaseModel):
    id: str
    message: str


class MessageResponse(BaseModel):
    message: str


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    content: Dict[str, Any] = {"error": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidUserError)
    async def _invalid_user(_: Request, exc: InvalidUserError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(UserNotFoundError)
    async def _not_found(_: Request, exc: UserNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(DeletionEmbargoError)
    async def _embargo(_: Request, exc: DeletionEmbargoError) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, str(exc), remainingTime=exc.remaining_time)

    @app.exception_handler(UserConflictError)
    async def _conflict(_: Request, exc: UserConflictError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(StoreError)
    async def _store_failure(request: Request, exc: StoreError) -> JSONResponse:
        logger.exception("Database failure while handling %s %s", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _malformed(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            MSG_MALFORMED_REQUEST,
            details=_summarize_validation_errors(exc),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )


def _summarize_validation_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Reduce pydantic validation errors to their location and message."""

    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": str(error.get("msg", ""))}
        for error in exc.errors()
    ]


def register_api_routes(app: FastAPI, users: UserService) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    @app.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post(
        "/createUser",
        status_code=status.HTTP_201_CREATED,
        response_model=CreateUserResponse,
    )
    def create_user(
        payload: Optional[CreateUserRequest] = Body(default=None),
    ) -> CreateUserResponse:
        name = payload.name if payload is not None else None
        email = payload.email if payload is not None else None
        user = users.create_user(name, email)
        return CreateUserResponse(id=user.id, message=MSG_CREATED.format(name=user.name))

    @app.get("/getUser")
    def get_user(name: Optional[str] = Query(default=None)) -> JSONResponse:
        found = users.find_users(name)
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=[user.to_payload() for user in found],
        )

    @app.put("/updateUser", response_model=MessageResponse)
    def update_user(
        name: Optional[str] = Query(default=None),
        fields: Optional[Dict[str, Any]] = Body(default=None),
    ) -> MessageResponse:
        users.update_user(name, fields)
        return MessageResponse(message=MSG_UPDATED)

    @app.delete("/deleteUser", response_model=MessageResponse)
    def delete_user(name: Optional[str] = Query(default=None)) -> MessageResponse:
        users.delete_user(name)
        return MessageResponse(message=MSG_DELETED)


def create_app(
    *,
    database: Database | None = None,
    settings: PolicySettings | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the user service."""

    db = database or Database(resolve_database_path(os.getenv("USERGATE_DB_PATH")))
    db.initialize()

    policy = settings or load_settings_from_env()
    user_service = UserService(db, policy)

    app = FastAPI(
        title="Usergate API",
        version="0.1.0",
        description="Validated user records backed by a document database.",
    )
    app.state.database = db
    app.state.users = user_service

    _register_error_handlers(app)
    register_api_routes(app, user_service)

    logger.info(
        "User service ready (database=%s, collection=%s, embargo=%ss)",
        db.path,
        policy.collection,
        policy.deletion_embargo_seconds,
    )
    return app


__all__ = ["create_app", "register_api_routes"]
