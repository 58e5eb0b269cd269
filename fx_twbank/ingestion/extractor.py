"""Turn localized rate-page text into :class:`RateRecord` rows with a language model.

The model output is untrusted: it may wrap the JSON in code fences, add
commentary around it, or put arbitrary values in numeric fields. Parsing is
strict at the top level (we need a non-empty array) and total at field level
(any bad value becomes ``None``).
"""

from __future__ import annotations

import json
import math
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING, Any, Iterable, Mapping

import anthropic

from fx_twbank.errors import (
    EmptyResponseError,
    ExtractionServiceError,
    FetchCancelledError,
    MalformedResultError,
    MissingCredentialError,
)
from fx_twbank.ingestion.models import RateRecord
from fx_twbank.utils.logger import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from fx_twbank.config import PipelineSettings

LOGGER = get_logger(__name__)

SYSTEM_PROMPT = (
    "You convert bank exchange-rate pages into JSON. "
    "Reply with a single JSON array and nothing else: no prose, no markdown."
)

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)
_NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def build_prompt(
    text: str,
    *,
    currencies: Iterable[str],
    currency_names: Mapping[str, str],
    max_chars: int,
) -> str:
    """Assemble the extraction instructions around a capped excerpt of ``text``."""

    targets = list(currencies)
    name_hints = ", ".join(
        f"{code}->{currency_names[code]}" for code in targets if code in currency_names
    )
    return (
        "Task: Extract exchange rates from text to JSON.\n"
        f"Source: {text[:max_chars]}\n"
        "\n"
        "Rules:\n"
        "1. Output strictly a JSON Array. No markdown formatting.\n"
        "2. Fields: currency(code), cashBuy, cashSell, spotBuy, spotSell. "
        'Use null for "-".\n'
        f"3. Add 'currencyName' in Traditional Chinese ({name_hints}).\n"
        f"4. Target: {', '.join(targets)}.\n"
    )


def clean_json_payload(text: str) -> str:
    """Strip code fences and keep the span from the first ``[`` to the last ``]``."""

    cleaned = _FENCE_PATTERN.sub("", text)
    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start != -1 and end > start:
        return cleaned[start : end + 1]
    return cleaned.strip()


def coerce_rate(value: Any) -> float | None:
    """Map any JSON value to a finite float or ``None``. Never raises."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        candidate = value.strip()
        if candidate in {"", "-"} or not _NUMBER_PATTERN.fullmatch(candidate):
            return None
        try:
            number = float(candidate)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def coerce_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def coerce_record(item: Any) -> RateRecord:
    """Build a :class:`RateRecord` from one array element of the model output."""

    if not isinstance(item, Mapping):
        return RateRecord(currency="")
    return RateRecord(
        currency=coerce_text(item.get("currency")),
        currency_name=coerce_text(item.get("currencyName")),
        cash_buy=coerce_rate(item.get("cashBuy")),
        cash_sell=coerce_rate(item.get("cashSell")),
        spot_buy=coerce_rate(item.get("spotBuy")),
        spot_sell=coerce_rate(item.get("spotSell")),
    )


def parse_rate_payload(text: str) -> list[RateRecord]:
    """Parse cleaned model output into records.

    Raises :class:`MalformedResultError` when the text is not JSON, is not an
    array, or is an empty array.
    """

    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedResultError(
            f"Model output is not valid JSON: {exc}", payload=text
        ) from exc
    if not isinstance(data, list):
        raise MalformedResultError(
            f"Expected a JSON array of rates, got {type(data).__name__}", payload=text
        )
    if not data:
        raise MalformedResultError("Model returned an empty rate array", payload=text)
    return [coerce_record(item) for item in data]


class RateExtractor:
    """Ask the completion service for structured rows and parse its answer."""

    poll_interval = 0.05

    def __init__(self, settings: "PipelineSettings", *, client: Any | None = None) -> None:
        self.settings = settings
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.settings.has_credential:
                raise MissingCredentialError(
                    "API key is missing; set ANTHROPIC_API_KEY (or API_KEY) in the environment."
                )
            # One bounded request per cycle; no SDK-level retries.
            self._client = anthropic.Anthropic(
                api_key=self.settings.api_key,
                max_retries=0,
                timeout=self.settings.completion_timeout,
            )
        return self._client

    def prompt_for(self, text: str) -> str:
        return build_prompt(
            text,
            currencies=self.settings.currencies,
            currency_names=self.settings.currency_names,
            max_chars=self.settings.max_prompt_chars,
        )

    def complete(self, prompt: str, *, cancel_event: threading.Event | None = None) -> str:
        """Send ``prompt`` and return the concatenated text blocks of the reply.

        With a ``cancel_event`` the request runs on a worker thread. Setting the
        event closes the client's HTTP connections and raises
        :class:`FetchCancelledError` right away; the abandoned worker ends no
        later than ``completion_timeout``.
        """

        if cancel_event is None:
            return self._create(self.client, prompt)
        client = self.client
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="completion")
        future = pool.submit(self._create, client, prompt)
        pool.shutdown(wait=False)
        while True:
            try:
                return future.result(timeout=self.poll_interval)
            except FutureTimeoutError:
                if cancel_event.is_set():
                    future.cancel()
                    self._abandon(client)
                    raise FetchCancelledError("Rate fetch cancelled") from None

    def _create(self, client: Any, prompt: str) -> str:
        try:
            message = client.messages.create(
                model=self.settings.model,
                max_tokens=self.settings.max_tokens,
                temperature=self.settings.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise ExtractionServiceError(f"Completion request failed: {exc}") from exc
        blocks = getattr(message, "content", None) or []
        return "".join(
            block.text for block in blocks if isinstance(getattr(block, "text", None), str)
        )

    def _abandon(self, client: Any) -> None:
        LOGGER.info("Cancelling in-flight completion request")
        close = getattr(client, "close", None)
        if callable(close):
            close()
        if self._owns_client and self._client is client:
            self._client = None

    def extract(self, text: str, *, cancel_event: threading.Event | None = None) -> list[RateRecord]:
        prompt = self.prompt_for(text)
        LOGGER.info(
            "Requesting structured extraction from %s (%s prompt chars)",
            self.settings.model,
            len(prompt),
        )
        reply = self.complete(prompt, cancel_event=cancel_event)
        if not reply.strip():
            raise EmptyResponseError("The model returned an empty response")
        records = parse_rate_payload(clean_json_payload(reply))
        LOGGER.info("Model returned %s rate rows", len(records))
        return records


__all__ = [
    "RateExtractor",
    "SYSTEM_PROMPT",
    "build_prompt",
    "clean_json_payload",
    "coerce_rate",
    "coerce_record",
    "coerce_text",
    "parse_rate_payload",
]
