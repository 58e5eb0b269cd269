"""Catalog of public relays used to reach the Bank of Taiwan rate page.

Each relay is a :class:`ProxyStrategy` descriptor pairing a URL rewriting rule
with a response-to-text rule. The tuple order in :data:`DEFAULT_STRATEGIES` is
the preference ranking; re-ranking or adding a relay only touches this module
(or configuration through :func:`order_strategies`).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Sequence
from urllib.parse import quote


@dataclass(frozen=True, slots=True)
class RelayResponse:
    """Body and metadata of a relay response that was read to completion."""

    status_code: int
    content: bytes
    headers: Mapping[str, str] = field(default_factory=dict)
    encoding: str | None = None

    @property
    def text(self) -> str:
        try:
            return self.content.decode(self.encoding or "utf-8", errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")


UrlBuilder = Callable[[str], str]
ResponseExtractor = Callable[[RelayResponse], str]


def response_text(response: RelayResponse) -> str:
    """Use the body as-is."""

    return response.text


def allorigins_contents(response: RelayResponse) -> str:
    """Unwrap the ``{"contents": ...}`` envelope returned by AllOrigins ``/get``."""

    payload = json.loads(response.text)
    if not isinstance(payload, dict) or not isinstance(payload.get("contents"), str):
        raise ValueError("AllOrigins envelope has no 'contents' field")
    return payload["contents"]


@dataclass(frozen=True, slots=True)
class ProxyStrategy:
    """One relay: how to address it and how to read what it sends back.

    ``condensed`` marks reader-style relays that already turn the HTML page
    into prose/markdown, so no table localization is needed afterwards.
    """

    name: str
    build_url: UrlBuilder
    extract: ResponseExtractor = response_text
    condensed: bool = False


JINA_READER = ProxyStrategy(
    name="Jina AI Reader",
    build_url=lambda url: f"https://r.jina.ai/{url}",
    condensed=True,
)
CODETABS = ProxyStrategy(
    name="CodeTabs",
    build_url=lambda url: f"https://api.codetabs.com/v1/proxy?quest={quote(url, safe='')}",
)
THINGPROXY = ProxyStrategy(
    name="ThingProxy",
    build_url=lambda url: f"https://thingproxy.freeboard.io/fetch/{url}",
)
ALLORIGINS = ProxyStrategy(
    name="AllOrigins",
    build_url=lambda url: f"https://api.allorigins.win/raw?url={quote(url, safe='')}",
)
ALLORIGINS_JSON = ProxyStrategy(
    name="AllOrigins JSON",
    build_url=lambda url: f"https://api.allorigins.win/get?url={quote(url, safe='')}",
    extract=allorigins_contents,
)

DEFAULT_STRATEGIES: tuple[ProxyStrategy, ...] = (JINA_READER, CODETABS, THINGPROXY, ALLORIGINS)
KNOWN_STRATEGIES: tuple[ProxyStrategy, ...] = DEFAULT_STRATEGIES + (ALLORIGINS_JSON,)


def strategy_by_name(name: str, strategies: Iterable[ProxyStrategy] = KNOWN_STRATEGIES) -> ProxyStrategy:
    """Return the strategy called ``name`` (case-insensitive)."""

    wanted = name.strip().lower()
    for strategy in strategies:
        if strategy.name.lower() == wanted:
            return strategy
    raise KeyError(f"Unknown relay strategy: {name}")


def order_strategies(
    names: Sequence[str], strategies: Iterable[ProxyStrategy] = KNOWN_STRATEGIES
) -> tuple[ProxyStrategy, ...]:
    """Pick and rank strategies by name, e.g. from a comma-separated setting."""

    catalog = tuple(strategies)
    ordered: list[ProxyStrategy] = []
    for name in names:
        if not name.strip():
            continue
        strategy = strategy_by_name(name, catalog)
        if strategy not in ordered:
            ordered.append(strategy)
    if not ordered:
        raise ValueError("At least one relay strategy name is required")
    return tuple(ordered)


__all__ = [
    "ALLORIGINS",
    "ALLORIGINS_JSON",
    "CODETABS",
    "DEFAULT_STRATEGIES",
    "JINA_READER",
    "KNOWN_STRATEGIES",
    "THINGPROXY",
    "ProxyStrategy",
    "RelayResponse",
    "allorigins_contents",
    "order_strategies",
    "response_text",
    "strategy_by_name",
]
