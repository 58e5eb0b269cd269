"""Runtime settings for the rate pipeline."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Mapping

from fx_twbank.ingestion.relay_fetcher import BOT_RATE_URL, DEFAULT_TIMEOUT
from fx_twbank.ingestion.strategy import DEFAULT_STRATEGIES, ProxyStrategy, order_strategies

API_KEY_ENV_VARS: tuple[str, ...] = ("ANTHROPIC_API_KEY", "API_KEY")
DEFAULT_MODEL = "claude-sonnet-4-5"
DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_TOKENS = 4096
DEFAULT_MAX_PROMPT_CHARS = 150_000
DEFAULT_COMPLETION_TIMEOUT = 60.0

TARGET_CURRENCIES: tuple[str, ...] = (
    "USD", "HKD", "GBP", "AUD", "CAD", "SGD", "CHF", "JPY", "ZAR", "SEK",
    "NZD", "THB", "PHP", "IDR", "EUR", "KRW", "VND", "MYR", "CNY",
)

# Names used on the Bank of Taiwan board (Traditional Chinese).
CURRENCY_NAMES: dict[str, str] = {
    "USD": "美金",
    "HKD": "港幣",
    "GBP": "英鎊",
    "AUD": "澳幣",
    "CAD": "加拿大幣",
    "SGD": "新加坡幣",
    "CHF": "瑞士法郎",
    "JPY": "日圓",
    "ZAR": "南非幣",
    "SEK": "瑞典幣",
    "NZD": "紐元",
    "THB": "泰幣",
    "PHP": "菲國比索",
    "IDR": "印尼幣",
    "EUR": "歐元",
    "KRW": "韓元",
    "VND": "越南盾",
    "MYR": "馬來幣",
    "CNY": "人民幣",
}


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Everything one fetch cycle needs to know; nothing here changes at runtime."""

    api_key: str | None = None
    target_url: str = BOT_RATE_URL
    strategies: tuple[ProxyStrategy, ...] = DEFAULT_STRATEGIES
    timeout: float = DEFAULT_TIMEOUT
    completion_timeout: float = DEFAULT_COMPLETION_TIMEOUT
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    max_prompt_chars: int = DEFAULT_MAX_PROMPT_CHARS
    currencies: tuple[str, ...] = TARGET_CURRENCIES
    currency_names: Mapping[str, str] = field(default_factory=lambda: dict(CURRENCY_NAMES))
    condense_html: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "PipelineSettings":
        """Build settings from environment variables, then apply ``overrides``.

        Recognised variables: ``ANTHROPIC_API_KEY`` (or ``API_KEY``),
        ``FX_TWBANK_TARGET_URL``, ``FX_TWBANK_TIMEOUT``, ``FX_TWBANK_COMPLETION_TIMEOUT``,
        ``FX_TWBANK_MODEL`` and ``FX_TWBANK_STRATEGIES`` (comma-separated relay names, in order).
        """

        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in API_KEY_ENV_VARS:
            if env.get(name):
                values["api_key"] = env[name]
                break
        if env.get("FX_TWBANK_TARGET_URL"):
            values["target_url"] = env["FX_TWBANK_TARGET_URL"]
        if env.get("FX_TWBANK_TIMEOUT"):
            values["timeout"] = _parse_timeout(env["FX_TWBANK_TIMEOUT"], "FX_TWBANK_TIMEOUT")
        if env.get("FX_TWBANK_COMPLETION_TIMEOUT"):
            values["completion_timeout"] = _parse_timeout(
                env["FX_TWBANK_COMPLETION_TIMEOUT"], "FX_TWBANK_COMPLETION_TIMEOUT"
            )
        if env.get("FX_TWBANK_MODEL"):
            values["model"] = env["FX_TWBANK_MODEL"]
        if env.get("FX_TWBANK_STRATEGIES"):
            values["strategies"] = order_strategies(env["FX_TWBANK_STRATEGIES"].split(","))
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


def _parse_timeout(raw: str, name: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from exc
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


__all__ = [
    "API_KEY_ENV_VARS",
    "CURRENCY_NAMES",
    "DEFAULT_COMPLETION_TIMEOUT",
    "DEFAULT_MAX_PROMPT_CHARS",
    "DEFAULT_MODEL",
    "PipelineSettings",
    "TARGET_CURRENCIES",
]
