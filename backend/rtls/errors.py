# rtls/errors.py
# ------------------------------------------------------------
# Error taxonomy surfaced to the API layer.
#
# - NotFoundError   -> 404 (unknown device/geofence/alert id)
# - ValidationError -> 422 (bad threshold, radius, coordinates)
#
# Resolving an already-resolved alert is not an error.
# ------------------------------------------------------------

from typing import Optional


class RTLSError(Exception):
    """Base class for domain errors."""


class NotFoundError(RTLSError):
    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} '{entity_id}' not found")


class ValidationError(RTLSError):
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """
        Collapse a pydantic ValidationError into a single readable message.
        """
        errs = exc.errors()
        if not errs:
            return cls(str(exc))
        first = errs[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        return cls(f"{loc}: {first.get('msg')}" if loc else first.get("msg", ""), field=loc or None)
