from __future__ import annotations


class InvalidSearchParameter(ValueError):
    """Raised when a search input fails validation; maps to HTTP 400."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def to_payload(self) -> dict:
        return {"message": self.message, "field": self.field}


__all__ = ["InvalidSearchParameter"]
