"""Shared API helpers for route handlers."""

from fastapi import Header, HTTPException


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity from the ``X-User-Id`` header.

    Authentication happens upstream of this service; deployments that
    resolve users differently override this dependency.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def error_detail(code: str, message: str) -> dict:
    """Stable error body: a machine-readable code plus a safe message."""
    return {"code": code, "message": message}
