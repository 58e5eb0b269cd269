"""Fetch the rate page through an ordered chain of public relays."""

from __future__ import annotations

import re
import socket
import threading
import time
from typing import Iterable, Mapping, Sequence

import requests

from fx_twbank.errors import AllProxiesFailedError, FetchCancelledError
from fx_twbank.ingestion.models import FetchedContent
from fx_twbank.ingestion.strategy import DEFAULT_STRATEGIES, ProxyStrategy, RelayResponse
from fx_twbank.utils.logger import get_logger

LOGGER = get_logger(__name__)

BOT_RATE_URL = "https://rate.bot.com.tw/xrt?Lang=en-US"
DEFAULT_TIMEOUT = 10.0
CONTENT_MARKERS: tuple[str, ...] = ("Currency", "USD", "美金", "Download CSV")
DEFAULT_HEADERS: dict[str, str] = {
    "X-Requested-With": "XMLHttpRequest",
    "User-Agent": "fx-twbank/0.1 (+https://rate.bot.com.tw)",
    "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.8",
}
_CHARSET_PATTERN = re.compile(r"charset=([\w.:-]+)", re.IGNORECASE)


class RelayContentError(ValueError):
    """A relay answered, but not with the rate page."""


class RelayFetcher:
    """Try each relay in turn until one returns plausible rate-page content.

    Every attempt gets its own wall-clock budget of ``timeout`` seconds. The
    budget covers connecting and reading the whole body, so a relay that
    trickles bytes cannot hold up the rest of the chain.
    """

    def __init__(
        self,
        strategies: Sequence[ProxyStrategy] = DEFAULT_STRATEGIES,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        markers: Iterable[str] = CONTENT_MARKERS,
        session: requests.Session | None = None,
        headers: Mapping[str, str] | None = None,
        chunk_size: int = 8192,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.strategies = tuple(strategies)
        self.timeout = timeout
        self.markers = tuple(markers)
        self.session = session or requests.Session()
        self.headers = dict(DEFAULT_HEADERS if headers is None else headers)
        self.chunk_size = chunk_size

    def fetch(
        self, target_url: str = BOT_RATE_URL, *, cancel_event: threading.Event | None = None
    ) -> FetchedContent:
        attempted: list[str] = []
        last_error: BaseException | None = None

        for strategy in self.strategies:
            self._raise_if_cancelled(cancel_event)
            attempted.append(strategy.name)
            relay_url = strategy.build_url(target_url)
            LOGGER.info("Attempting fetch via %s", strategy.name)
            try:
                response = self._get(relay_url, cancel_event)
                content = strategy.extract(response)
                self._check_content(content)
            except FetchCancelledError:
                raise
            except (requests.RequestException, ValueError) as exc:
                LOGGER.warning("Fetch failed with %s: %s", strategy.name, exc)
                last_error = exc
                continue
            LOGGER.info("Successfully fetched via %s (%s chars)", strategy.name, len(content))
            return FetchedContent(
                text=content, strategy=strategy, url=relay_url, attempted=tuple(attempted)
            )

        LOGGER.error("All relays failed. Last error: %s", last_error)
        tried = ", ".join(attempted) or "none configured"
        raise AllProxiesFailedError(
            f"Unable to reach the Bank of Taiwan rate page; every relay failed ({tried}). "
            "Please try again later.",
            last_error=last_error,
            attempted=attempted,
        )

    def _get(self, url: str, cancel_event: threading.Event | None) -> RelayResponse:
        deadline = time.monotonic() + self.timeout
        response = self.session.get(
            url, headers=self.headers, timeout=self.timeout, stream=True
        )
        watchdog = _AttemptWatchdog(response, deadline, cancel_event)
        watchdog.start()
        try:
            if not 200 <= response.status_code < 300:
                raise requests.HTTPError(
                    f"HTTP error! status: {response.status_code}", response=response
                )
            chunks: list[bytes] = []
            try:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    self._raise_if_cancelled(cancel_event)
                    if chunk:
                        chunks.append(chunk)
            except Exception as exc:
                watchdog.stop()
                self._raise_if_aborted(watchdog, url, exc)
                raise
            watchdog.stop()
            self._raise_if_aborted(watchdog, url)
            return RelayResponse(
                status_code=response.status_code,
                content=b"".join(chunks),
                headers=dict(response.headers),
                encoding=_declared_charset(response.headers.get("Content-Type", "")),
            )
        finally:
            watchdog.stop()
            response.close()

    def _raise_if_aborted(
        self, watchdog: _AttemptWatchdog, url: str, cause: BaseException | None = None
    ) -> None:
        if watchdog.reason == _CANCELLED:
            raise FetchCancelledError("Rate fetch cancelled") from cause
        if watchdog.reason == _TIMED_OUT:
            raise requests.Timeout(f"Relay exceeded {self.timeout:g}s budget for {url}") from cause

    def _check_content(self, content: object) -> None:
        if not isinstance(content, str) or not content:
            raise RelayContentError("Relay returned an empty body")
        if not any(marker in content for marker in self.markers):
            raise RelayContentError("Fetched content does not contain valid currency data")

    @staticmethod
    def _raise_if_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise FetchCancelledError("Rate fetch cancelled")


_TIMED_OUT = "timed out"
_CANCELLED = "cancelled"


class _AttemptWatchdog(threading.Thread):
    """Aborts a streamed response once its deadline passes or the fetch is cancelled.

    A read blocked inside ``iter_content`` never sees a deadline check, so the
    abort comes from this thread: it shuts the socket down, which wakes the
    blocked read, and records why in :attr:`reason`.
    """

    poll_interval = 0.05

    def __init__(
        self,
        response: requests.Response,
        deadline: float,
        cancel_event: threading.Event | None,
    ) -> None:
        super().__init__(name="relay-watchdog", daemon=True)
        self._response = response
        self._deadline = deadline
        self._cancel_event = cancel_event
        self._done = threading.Event()
        self.reason: str | None = None

    def run(self) -> None:
        while not self._done.is_set():
            if self._cancel_event is not None and self._cancel_event.is_set():
                self._abort(_CANCELLED)
                return
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                self._abort(_TIMED_OUT)
                return
            self._done.wait(min(remaining, self.poll_interval))

    def stop(self) -> None:
        self._done.set()
        if self.is_alive() and self is not threading.current_thread():
            self.join()

    def _abort(self, reason: str) -> None:
        self.reason = reason
        LOGGER.debug("Aborting relay response: %s", reason)
        _shutdown_connection(self._response)
        self._response.close()


def _shutdown_connection(response: requests.Response) -> None:
    # urllib3 keeps the pooled connection on the raw response while streaming
    raw = getattr(response, "raw", None)
    connection = getattr(raw, "connection", None) or getattr(raw, "_connection", None)
    sock = getattr(connection, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as exc:
        LOGGER.debug("Socket already closed: %s", exc)


def _declared_charset(content_type: str) -> str | None:
    match = _CHARSET_PATTERN.search(content_type)
    return match.group(1).strip("\"'") if match else None


__all__ = [
    "BOT_RATE_URL",
    "CONTENT_MARKERS",
    "DEFAULT_HEADERS",
    "DEFAULT_TIMEOUT",
    "RelayContentError",
    "RelayFetcher",
]
