"""
Service error taxonomy.

Every error carries a machine-readable ``kind`` and the HTTP status class it
maps to. Routes never build error responses themselves; the handler in
``main.py`` renders ``ServiceError.to_dict()``.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"kind": self.kind, "detail": self.message}
        body.update(self.context)
        return body


class ValidationError(ServiceError):
    """Malformed or missing input."""
    kind = "validation"
    status_code = 400


class GeofenceError(ValidationError):
    """Caller is too far from the site or the GPS fix is too coarse."""
    kind = "geofence"

    def __init__(
        self,
        message: str,
        distance_m: Optional[float] = None,
        radius_m: Optional[float] = None,
        accuracy_m: Optional[float] = None,
        max_accuracy_m: Optional[float] = None,
    ):
        self.distance_m = distance_m
        self.radius_m = radius_m
        self.accuracy_m = accuracy_m
        self.max_accuracy_m = max_accuracy_m
        super().__init__(
            message,
            context={
                "distance_m": round(distance_m) if distance_m is not None else None,
                "radius_m": radius_m,
                "accuracy_m": accuracy_m,
                "max_accuracy_m": max_accuracy_m,
            },
        )


class AuthenticationError(ServiceError):
    kind = "authentication"
    status_code = 401


class AuthorizationError(ServiceError):
    kind = "authorization"
    status_code = 403


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = 404


class ConflictError(ServiceError):
    kind = "conflict"
    status_code = 409


class StoreError(ServiceError):
    """Persistence failure. Safe to retry only for reads and idempotent writes."""
    kind = "store"
    status_code = 500
