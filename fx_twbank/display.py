"""Presentation helpers: ordering, formatting and a board that survives failed refreshes."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Iterable

import pandas as pd

from fx_twbank.errors import RefreshInProgressError
from fx_twbank.ingestion.models import CalculatedRate, FetchOutcome
from fx_twbank.utils.logger import get_logger

LOGGER = get_logger(__name__)

DISPLAY_PRIORITY: tuple[str, ...] = ("CNY", "USD", "JPY", "EUR", "HKD", "AUD")
EMPTY_MESSAGE = "No rate data yet. Refresh to fetch the latest board."

CASH_COLUMNS = {"cash_buy": "Cash Buy", "cash_sell": "Cash Sell", "cash_mid": "Cash Mid"}
SPOT_COLUMNS = {"spot_buy": "Spot Buy", "spot_sell": "Spot Sell", "spot_mid": "Spot Mid"}


def sort_for_display(rates: Iterable[CalculatedRate]) -> list[CalculatedRate]:
    """Priority currencies first (in :data:`DISPLAY_PRIORITY` order), then by code."""

    def _key(rate: CalculatedRate) -> tuple[int, str]:
        try:
            return DISPLAY_PRIORITY.index(rate.currency), ""
        except ValueError:
            return len(DISPLAY_PRIORITY), rate.currency

    return sorted(rates, key=_key)


def format_rate(value: float | None) -> str:
    if value is None or pd.isna(value):
        return "-"
    return f"{value:.4f}"


def rates_to_frame(rates: Iterable[CalculatedRate], *, show_spot: bool = False) -> pd.DataFrame:
    """Tabulate rates in display order; spot columns only when ``show_spot``."""

    columns = dict(CASH_COLUMNS)
    if show_spot:
        columns.update(SPOT_COLUMNS)
    rows = []
    for rate in sort_for_display(rates):
        row = {"Currency": rate.currency, "Name": rate.currency_name}
        for attr, label in columns.items():
            row[label] = getattr(rate, attr)
        rows.append(row)
    return pd.DataFrame(rows, columns=["Currency", "Name", *columns.values()])


def render_table(rates: Iterable[CalculatedRate], *, show_spot: bool = False) -> str:
    frame = rates_to_frame(rates, show_spot=show_spot)
    if frame.empty:
        return EMPTY_MESSAGE
    for column in frame.columns:
        if column not in {"Currency", "Name"}:
            frame[column] = frame[column].map(format_rate)
    return frame.to_string(index=False)


class RateBoard:
    """Holds what is on screen between refreshes.

    A failed refresh records its message in :attr:`error` but leaves the
    previously displayed :attr:`rates` untouched. Overlapping refreshes are
    refused while :attr:`busy` is set.
    """

    def __init__(self, fetcher: Callable[..., FetchOutcome]) -> None:
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self.rates: list[CalculatedRate] = []
        self.error: str | None = None
        self.last_updated: datetime | None = None
        self.busy = False
        self.show_spot = False

    def toggle_spot(self) -> bool:
        self.show_spot = not self.show_spot
        return self.show_spot

    def refresh(self, *, cancel_event: threading.Event | None = None) -> FetchOutcome:
        with self._lock:
            if self.busy:
                raise RefreshInProgressError("A refresh is already running")
            self.busy = True
        self.error = None
        try:
            outcome = self._fetcher(cancel_event=cancel_event)
        finally:
            self.busy = False
        if outcome.ok:
            self.rates = list(outcome.rates)
            self.last_updated = outcome.completed_at
        else:
            LOGGER.warning("Refresh failed; keeping %s previous rows: %s", len(self.rates), outcome.error)
            self.error = outcome.error
        return outcome

    def render(self) -> str:
        return render_table(self.rates, show_spot=self.show_spot)


__all__ = [
    "DISPLAY_PRIORITY",
    "EMPTY_MESSAGE",
    "RateBoard",
    "format_rate",
    "rates_to_frame",
    "render_table",
    "sort_for_display",
]
