"""
Context management for request and user ID propagation.

This module provides utilities for propagating request_id and user_id
throughout the application stack using contextvars (thread-safe).
"""

import uuid
from contextvars import ContextVar
from typing import Optional
import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[int]] = ContextVar("user_id", default=None)


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID in context.

    Args:
        request_id: Optional request ID (generates new one if not provided)

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = generate_request_id()

    request_id_var.set(request_id)
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_user_id(user_id: int) -> int:
    """
    Bind the verified user ID to the logging context.

    Args:
        user_id: ID delivered by the authentication layer

    Returns:
        The user ID that was set
    """
    user_id_var.set(user_id)
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


def get_user_id() -> Optional[int]:
    return user_id_var.get()


def clear_context():
    """
    Clear all context variables.

    Useful for cleanup after request processing.
    """
    request_id_var.set(None)
    user_id_var.set(None)
    structlog.contextvars.clear_contextvars()


def bind_context(**kwargs):
    """Bind additional context variables to structlog."""
    structlog.contextvars.bind_contextvars(**kwargs)
