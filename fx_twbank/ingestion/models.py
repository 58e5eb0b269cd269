"""Data models shared across ingestion modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - imported only for type checking
    from fx_twbank.ingestion.strategy import ProxyStrategy


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class RateRecord:
    """A single currency row as extracted from the Bank of Taiwan rate board."""

    currency: str
    currency_name: str = ""
    cash_buy: float | None = None
    cash_sell: float | None = None
    spot_buy: float | None = None
    spot_sell: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "currencyName": self.currency_name,
            "cashBuy": self.cash_buy,
            "cashSell": self.cash_sell,
            "spotBuy": self.spot_buy,
            "spotSell": self.spot_sell,
        }


@dataclass(frozen=True, slots=True)
class CalculatedRate:
    """Display-ready row: repaired buy/sell quotes plus their mid rates."""

    currency: str
    currency_name: str = ""
    cash_buy: float | None = None
    cash_sell: float | None = None
    spot_buy: float | None = None
    spot_sell: float | None = None
    cash_mid: float | None = None
    spot_mid: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "currencyName": self.currency_name,
            "cashBuy": self.cash_buy,
            "cashSell": self.cash_sell,
            "spotBuy": self.spot_buy,
            "spotSell": self.spot_sell,
            "cashMid": self.cash_mid,
            "spotMid": self.spot_mid,
        }


@dataclass(frozen=True, slots=True)
class FetchedContent:
    """Text returned by the first relay that passed the content check."""

    text: str
    strategy: "ProxyStrategy"
    url: str
    attempted: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FetchOutcome:
    """Result of one fetch cycle; either ``rates`` or ``error`` is meaningful."""

    rates: list[CalculatedRate] = field(default_factory=list)
    error: str | None = None
    attempted: tuple[str, ...] = ()
    completed_at: datetime = field(default_factory=_utcnow)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls, rates: list[CalculatedRate], *, attempted: tuple[str, ...] = ()
    ) -> "FetchOutcome":
        return cls(rates=list(rates), error=None, attempted=attempted)

    @classmethod
    def failure(cls, error: str, *, attempted: tuple[str, ...] = ()) -> "FetchOutcome":
        return cls(rates=[], error=error, attempted=attempted)


__all__ = ["CalculatedRate", "FetchOutcome", "FetchedContent", "RateRecord"]
