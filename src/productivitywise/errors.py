from __future__ import annotations


class ProductivityWiseError(Exception):
    """Base class for domain errors."""


class ActiveSessionExists(ProductivityWiseError):
    """A second active focus session was rejected by the store."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"user {user_id} already has an active focus session")
        self.user_id = user_id


class TextGenerationError(ProductivityWiseError):
    """The text generator failed or returned nothing usable."""


__all__ = [
    "ActiveSessionExists",
    "ProductivityWiseError",
    "TextGenerationError",
]
