from __future__ import annotations

import logging
import os
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection

logger = logging.getLogger(__name__)


class Operator:
    def __init__(self, subject: str | None) -> None:
        self.sub = subject


def _bearer_token(connection: HTTPConnection) -> Optional[str]:
    header = connection.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1].strip() or None
    # Browsers cannot set headers on a WebSocket handshake.
    if connection.scope["type"] == "websocket":
        return connection.query_params.get("token") or None
    return None


def _enforced() -> bool:
    return os.getenv("ENFORCE_JWT", "").lower() in {"1", "true", "yes"}


async def operator_optional(connection: HTTPConnection) -> Operator | None:
    """Identify the operator from a bearer JWT.

    Configuration via env:
      - ENFORCE_JWT: when truthy, a valid token is mandatory on rotation routes
      - AUTH_JWT_SECRET: HS256 secret used to verify tokens
      - AUTH_JWT_AUDIENCE / AUTH_JWT_ISSUER: optional claims to validate

    WebSocket clients may pass the token as a ``token`` query parameter.

    Without ENFORCE_JWT a missing token maps to an anonymous operator so the
    local UI works before auth is wired up.
    """
    token = _bearer_token(connection)
    if not token:
        return None if _enforced() else Operator(subject="anonymous")

    secret = os.getenv("AUTH_JWT_SECRET")
    if not secret:
        # Nothing to verify against; only acceptable in development.
        return None if _enforced() else Operator(subject="dev-operator")

    audience = os.getenv("AUTH_JWT_AUDIENCE")
    issuer = os.getenv("AUTH_JWT_ISSUER")
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience or None,
            issuer=issuer or None,
            options={"verify_aud": bool(audience)},
        )
    except jwt.PyJWTError as exc:
        logger.info("Rejected operator token: %s", exc)
        return None
    return Operator(subject=str(decoded.get("sub") or "operator"))


async def operator_required(operator: Operator | None = Depends(operator_optional)) -> Operator:
    if operator is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid token")
    return operator
