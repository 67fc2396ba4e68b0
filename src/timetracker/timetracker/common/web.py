from __future__ import annotations

from functools import wraps
from typing import Any

import structlog
from flask import jsonify, request, session

from ..core.enums import Role
from ..core.exceptions import (
    AlreadyActive,
    AuthorizationError,
    DomainError,
    InvalidTransition,
    OperationInProgress,
    SessionError,
    StoreUnavailable,
    ValidationError,
)

log = structlog.get_logger(__name__)


def login_required(view):
    @wraps(view)
    async def wrapper(*args, **kwargs):
        if "user_id" not in session:
            return jsonify({"success": False, "message": "Please log in to continue"}), 401
        return await view(*args, **kwargs)

    return wrapper


def roles_required(*roles: Role):
    """Allow only the given roles; managers and admins read everyone's records."""
    allowed = {r.value for r in roles}

    def decorator(view):
        @wraps(view)
        async def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return jsonify({"success": False, "message": "Please log in to continue"}), 401
            if session.get("role") not in allowed:
                return error_response(AuthorizationError("You do not have access to this page"))
            return await view(*args, **kwargs)

        return wrapper

    return decorator


def current_user_id() -> str:
    return str(session["user_id"])


def payload() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def error_response(exc: Exception):
    """One human-readable message per failure, with an HTTP status per error class."""
    if isinstance(exc, (AlreadyActive, OperationInProgress)):
        status = 409
    elif isinstance(exc, StoreUnavailable):
        status = 503
    elif isinstance(exc, (InvalidTransition, ValidationError)):
        status = 400
    elif isinstance(exc, AuthorizationError):
        status = 403
    elif isinstance(exc, DomainError):
        status = 400
    else:
        log.exception("unexpected_error", path=request.path)
        return jsonify({"success": False, "message": "System error while recording time"}), 500

    body: dict[str, Any] = {"success": False, "message": str(exc), "error": type(exc).__name__}
    if isinstance(exc, SessionError):
        body["retryable"] = exc.retryable
    return jsonify(body), status
