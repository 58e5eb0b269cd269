"""Public interface for the fx_twbank package."""

from __future__ import annotations

import threading
from importlib import metadata as importlib_metadata
from typing import Any

from fx_twbank.config import PipelineSettings
from fx_twbank.errors import (
    AllProxiesFailedError,
    EmptyResponseError,
    ExtractionServiceError,
    FetchCancelledError,
    FxTwBankError,
    MalformedResultError,
    MissingCredentialError,
)
from fx_twbank.ingestion.models import CalculatedRate, FetchOutcome, RateRecord
from fx_twbank.pipeline import RatePipeline

__all__ = [
    "__version__",
    "AllProxiesFailedError",
    "CalculatedRate",
    "EmptyResponseError",
    "ExtractionServiceError",
    "FetchCancelledError",
    "FetchOutcome",
    "FxTwBank",
    "FxTwBankError",
    "MalformedResultError",
    "MissingCredentialError",
    "PipelineSettings",
    "RateBoard",
    "RateRecord",
]

try:
    __version__ = importlib_metadata.version("fx-twbank")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - fallback for local runs
    __version__ = "0.1.0"


class FxTwBank:
    """Package facade around a configured :class:`RatePipeline`."""

    __slots__ = ("settings", "pipeline")

    __version__ = __version__

    def __init__(self, settings: PipelineSettings | None = None, **overrides: Any) -> None:
        """Configure the pipeline.

        Without ``settings`` the configuration is read from the environment
        (see :meth:`PipelineSettings.from_env`); keyword ``overrides`` are
        applied on top, e.g. ``FxTwBank(timeout=5)``.
        """

        if settings is None:
            settings = PipelineSettings.from_env(**overrides)
        elif overrides:
            raise ValueError("Pass either a PipelineSettings instance or keyword overrides, not both")
        self.settings = settings
        self.pipeline = RatePipeline(settings)

    def fetch(self, *, cancel_event: threading.Event | None = None) -> FetchOutcome:
        """Run one fetch cycle; failures are reported on the returned outcome."""

        return self.pipeline.run_fetch_cycle(cancel_event=cancel_event)

    def rates(self, *, cancel_event: threading.Event | None = None) -> list[CalculatedRate]:
        """Run one fetch cycle and return the rates, raising on failure."""

        return self.pipeline.fetch_rates(cancel_event=cancel_event)


def __getattr__(name: str) -> Any:
    """Lazily import presentation helpers so pandas loads only when needed."""

    if name == "RateBoard":
        from fx_twbank.display import RateBoard as _board

        return _board
    raise AttributeError(f"module 'fx_twbank' has no attribute {name}")
