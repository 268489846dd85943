"""FastAPI dependencies: pipeline objects from app state, and API key auth."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from classifyx.config import Settings
    from classifyx.ml.labels import LabelSet
    from classifyx.ml.pool import InferenceEnginePool
    from classifyx.service import ClassificationRequestHandler

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_labels(request: Request) -> LabelSet:
    labels: LabelSet = request.app.state.labels
    return labels


def get_engine_pool(request: Request) -> InferenceEnginePool:
    pool: InferenceEnginePool = request.app.state.engine_pool
    return pool


def get_request_handler(request: Request) -> ClassificationRequestHandler:
    handler: ClassificationRequestHandler = request.app.state.request_handler
    return handler


async def require_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Reject the request unless it carries the configured Bearer token.

    Without CLASSIFYX_API_KEY every request passes.
    """
    expected = get_settings_from_request(request).api_key
    if expected is None:
        return

    supplied = credentials.credentials if credentials is not None else ""
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
