from __future__ import annotations


class ServiceError(Exception):
    pass


class NotFoundError(ServiceError):
    pass


class ConflictError(ServiceError):
    """Caller-correctable integrity violation."""


class PermissionDeniedError(ServiceError):
    pass
