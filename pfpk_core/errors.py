from __future__ import annotations
from typing import Any, Optional


class PfpkError(Exception):
    """
    Base error for the profile directory.

    Carries an HTTP-ish status code so an outer routing layer can map it
    to a response without knowing the concrete class.
    """
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail

    def to_dict(self) -> dict:
        d = {"error": self.message}
        if self.detail is not None:
            d["detail"] = str(self.detail)
        return d


class InvalidInputError(PfpkError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, detail: Any = None):
        super().__init__(message, detail=detail)
        self.field = field

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.field:
            d["field"] = self.field
        return d


class InvalidNonceError(InvalidInputError):
    status_code = 401


class StorageInvariantError(PfpkError):
    # opaque server fault, never retried
    status_code = 500


class ConflictError(PfpkError):
    # raced on a unique constraint; safe to retry the whole operation
    status_code = 409
