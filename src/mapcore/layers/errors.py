"""Error taxonomy for the layer pipeline.

Every error is contained at the single-layer boundary: the batch
orchestrator catches ``LayerError`` and moves on to the next layer.
"""

from __future__ import annotations


class LayerError(Exception):
    """Base class for failures scoped to one layer."""

    def __init__(self, message: str, layer_id: str | None = None) -> None:
        super().__init__(message)
        self.layer_id = layer_id


class FetchError(LayerError):
    """Non-2xx response or network failure while fetching layer data."""

    def __init__(
        self,
        message: str,
        layer_id: str | None = None,
        status: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, layer_id)
        self.status = status
        self.url = url


class ParseError(LayerError):
    """Malformed JSON or GPX payload."""


class ValidationError(LayerError):
    """Schema violation. ``issues`` holds the individual findings."""

    def __init__(
        self,
        message: str,
        layer_id: str | None = None,
        issues: list | None = None,
    ) -> None:
        super().__init__(message, layer_id)
        self.issues = list(issues or [])


class StyleValidationError(ValidationError):
    """A style document does not match the style schema."""


class ConfigError(LayerError):
    """Missing or obsolete descriptor fields."""
