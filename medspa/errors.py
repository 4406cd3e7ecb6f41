"""Domain error taxonomy.

Every error is a werkzeug HTTPException so the unified handler in the app factory
renders it with the standard JSON error shape. Services raise these directly; they
never depend on a request context to do so.
"""
from __future__ import annotations
from typing import Optional
from werkzeug.exceptions import BadGateway, BadRequest, Conflict, Forbidden, NotFound


class ValidationError(BadRequest):
    kind = 'validation_error'


class AuthorizationError(Forbidden):
    kind = 'authorization_error'


class NotFoundError(NotFound):
    kind = 'not_found'


class ConflictError(Conflict):
    kind = 'conflict'


class GatewayError(BadGateway):
    kind = 'gateway_error'


class GatewayTimeout(GatewayError):
    """The gateway did not answer in time; the request may or may not have landed."""

    def __init__(self, description: Optional[str] = None):
        super().__init__(description or 'Payment gateway timed out')


__all__ = [
    'ValidationError', 'AuthorizationError', 'NotFoundError', 'ConflictError',
    'GatewayError', 'GatewayTimeout',
]
