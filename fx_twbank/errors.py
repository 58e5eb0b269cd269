"""Exceptions raised by the rate acquisition pipeline."""

from __future__ import annotations

from typing import Sequence


class FxTwBankError(RuntimeError):
    """Base class for every failure surfaced by :mod:`fx_twbank`.

    ``attempted`` names the relays tried before the failure, when any were.
    """

    attempted: tuple[str, ...] = ()


class MissingCredentialError(FxTwBankError):
    """Raised before any network call when no API credential is configured."""


class AllProxiesFailedError(FxTwBankError):
    """Every relay attempt failed (timeout, HTTP error, transport error or bad content)."""

    def __init__(
        self,
        message: str,
        *,
        last_error: BaseException | None = None,
        attempted: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempted = tuple(attempted)


class EmptyResponseError(FxTwBankError):
    """The completion service answered without any usable text."""


class MalformedResultError(FxTwBankError):
    """The completion text could not be turned into a non-empty JSON array."""

    def __init__(self, message: str, *, payload: str | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class ExtractionServiceError(FxTwBankError):
    """The completion service call itself failed."""


class FetchCancelledError(FxTwBankError):
    """A caller asked for the in-flight fetch cycle to stop."""


class RefreshInProgressError(FxTwBankError):
    """A board refresh was requested while another one is still running."""


__all__ = [
    "AllProxiesFailedError",
    "EmptyResponseError",
    "ExtractionServiceError",
    "FetchCancelledError",
    "FxTwBankError",
    "MalformedResultError",
    "MissingCredentialError",
    "RefreshInProgressError",
]
