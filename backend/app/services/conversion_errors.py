from __future__ import annotations

from typing import Literal

ConversionStage = Literal["validate", "fetch", "metadata", "render"]


class ConversionError(RuntimeError):
    """Base class for failures that end a conversion request."""

    stage: ConversionStage = "render"

    def __init__(self, message: str, *, stage: ConversionStage | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ValidationFailure(ConversionError):
    stage: ConversionStage = "validate"


class FetchFailure(ConversionError):
    """The extraction service was unreachable, answered non-2xx, or sent nothing."""

    stage: ConversionStage = "fetch"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RenderFailure(ConversionError):
    stage: ConversionStage = "render"


class FontAssetMissingError(RuntimeError):
    def __init__(self, path: object) -> None:
        super().__init__(f"PDF font asset not found: {path}")
        self.path = path
