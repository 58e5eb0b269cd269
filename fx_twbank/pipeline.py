"""One fetch cycle: relay fetch -> localize -> model extraction -> normalize."""

from __future__ import annotations

import threading

from fx_twbank.config import PipelineSettings
from fx_twbank.errors import (
    AllProxiesFailedError,
    FetchCancelledError,
    FxTwBankError,
    MalformedResultError,
    MissingCredentialError,
)
from fx_twbank.ingestion.extractor import RateExtractor
from fx_twbank.ingestion.localizer import condense_table_html, localize
from fx_twbank.ingestion.models import CalculatedRate, FetchOutcome, RateRecord
from fx_twbank.ingestion.normalizer import normalize_rates
from fx_twbank.ingestion.relay_fetcher import RelayFetcher
from fx_twbank.utils.logger import get_logger

LOGGER = get_logger(__name__)


class RatePipeline:
    """Wire the pipeline stages together for a given :class:`PipelineSettings`.

    ``fetcher`` and ``extractor`` default to the real relay chain and the
    Anthropic-backed extractor; tests pass stand-ins.
    """

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        *,
        fetcher: RelayFetcher | None = None,
        extractor: RateExtractor | None = None,
    ) -> None:
        self.settings = settings or PipelineSettings.from_env()
        self.fetcher = fetcher or RelayFetcher(
            self.settings.strategies, timeout=self.settings.timeout
        )
        self.extractor = extractor or RateExtractor(self.settings)

    def fetch_rates(self, *, cancel_event: threading.Event | None = None) -> list[CalculatedRate]:
        """Run one cycle and return display-ready rates, raising on any failure."""

        rates, _ = self._run(cancel_event)
        return rates

    def run_fetch_cycle(self, *, cancel_event: threading.Event | None = None) -> FetchOutcome:
        """Run one cycle and report the result as a :class:`FetchOutcome`.

        Pipeline failures become a failed outcome; cancellation still raises.
        """

        try:
            rates, attempted = self._run(cancel_event)
        except FetchCancelledError:
            raise
        except AllProxiesFailedError as exc:
            return FetchOutcome.failure(str(exc), attempted=exc.attempted)
        except FxTwBankError as exc:
            LOGGER.error("Rate fetch cycle failed: %s", exc)
            return FetchOutcome.failure(str(exc), attempted=exc.attempted)
        return FetchOutcome.success(rates, attempted=attempted)

    def _run(
        self, cancel_event: threading.Event | None
    ) -> tuple[list[CalculatedRate], tuple[str, ...]]:
        if not self.settings.has_credential:
            raise MissingCredentialError(
                "API key is missing; set ANTHROPIC_API_KEY (or API_KEY) in the environment."
            )
        fetched = self.fetcher.fetch(self.settings.target_url, cancel_event=cancel_event)
        text = localize(fetched.text, fetched.strategy)
        if self.settings.condense_html and text.startswith("<table"):
            text = condense_table_html(text)
        try:
            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelledError("Rate fetch cancelled")
            records = self.extractor.extract(text, cancel_event=cancel_event)
            records = _drop_blank_currencies(records)
        except FxTwBankError as exc:
            exc.attempted = fetched.attempted
            raise
        rates = normalize_rates(records)
        LOGGER.info("Fetched %s rates via %s", len(rates), fetched.strategy.name)
        return rates, fetched.attempted


def _drop_blank_currencies(records: list[RateRecord]) -> list[RateRecord]:
    kept = [record for record in records if record.currency]
    dropped = len(records) - len(kept)
    if dropped:
        LOGGER.warning("Dropped %s extracted rows without a currency code", dropped)
    if not kept:
        raise MalformedResultError("No extracted row carried a currency code")
    return kept


def fetch_rates(
    settings: PipelineSettings | None = None, *, cancel_event: threading.Event | None = None
) -> list[CalculatedRate]:
    return RatePipeline(settings).fetch_rates(cancel_event=cancel_event)


def run_fetch_cycle(
    settings: PipelineSettings | None = None, *, cancel_event: threading.Event | None = None
) -> FetchOutcome:
    return RatePipeline(settings).run_fetch_cycle(cancel_event=cancel_event)


__all__ = ["RatePipeline", "fetch_rates", "run_fetch_cycle"]
