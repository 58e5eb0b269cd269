"""Repair inverted buy/sell quotes and derive mid rates."""

from __future__ import annotations

import math
from typing import Iterable

from fx_twbank.ingestion.models import CalculatedRate, RateRecord
from fx_twbank.utils.logger import get_logger

LOGGER = get_logger(__name__)


def repair_pair(buy: float | None, sell: float | None) -> tuple[float | None, float | None]:
    """Return ``(buy, sell)`` with buy <= sell when both quotes are present."""

    if buy is not None and sell is not None and buy > sell:
        return sell, buy
    return buy, sell


def mid_rate(buy: float | None, sell: float | None) -> float | None:
    if buy is None or sell is None:
        return None
    mid = (buy + sell) / 2
    if math.isinf(mid):
        # buy + sell overflowed; the halves cannot
        mid = buy / 2 + sell / 2
    return mid


def normalize_record(record: RateRecord) -> CalculatedRate:
    cash_buy, cash_sell = repair_pair(record.cash_buy, record.cash_sell)
    spot_buy, spot_sell = repair_pair(record.spot_buy, record.spot_sell)
    if (cash_buy, spot_buy) != (record.cash_buy, record.spot_buy):
        LOGGER.debug("Swapped inverted buy/sell quotes for %s", record.currency)
    return CalculatedRate(
        currency=record.currency,
        currency_name=record.currency_name,
        cash_buy=cash_buy,
        cash_sell=cash_sell,
        spot_buy=spot_buy,
        spot_sell=spot_sell,
        cash_mid=mid_rate(cash_buy, cash_sell),
        spot_mid=mid_rate(spot_buy, spot_sell),
    )


def normalize_rates(records: Iterable[RateRecord]) -> list[CalculatedRate]:
    """Normalize every record, keeping the input order."""

    return [normalize_record(record) for record in records]


__all__ = ["mid_rate", "normalize_rates", "normalize_record", "repair_pair"]
