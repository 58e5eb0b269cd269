from __future__ import annotations

import pytest

from fx_twbank.ingestion.strategy import (
    ALLORIGINS,
    ALLORIGINS_JSON,
    CODETABS,
    DEFAULT_STRATEGIES,
    JINA_READER,
    THINGPROXY,
    RelayResponse,
    order_strategies,
    strategy_by_name,
)

TARGET = "https://rate.bot.com.tw/xrt?Lang=en-US"


def test_default_order_prefers_reader_relay() -> None:
    assert [strategy.name for strategy in DEFAULT_STRATEGIES] == [
        "Jina AI Reader",
        "CodeTabs",
        "ThingProxy",
        "AllOrigins",
    ]
    assert JINA_READER.condensed is True
    assert not any(strategy.condensed for strategy in DEFAULT_STRATEGIES[1:])


def test_relay_urls_embed_target() -> None:
    assert JINA_READER.build_url(TARGET) == f"https://r.jina.ai/{TARGET}"
    assert THINGPROXY.build_url(TARGET) == f"https://thingproxy.freeboard.io/fetch/{TARGET}"
    assert CODETABS.build_url(TARGET) == (
        "https://api.codetabs.com/v1/proxy?quest=https%3A%2F%2Frate.bot.com.tw%2Fxrt%3FLang%3Den-US"
    )
    assert ALLORIGINS.build_url(TARGET).startswith("https://api.allorigins.win/raw?url=https%3A")


def test_plain_extractor_decodes_declared_charset() -> None:
    response = RelayResponse(status_code=200, content="美金 USD".encode("big5"), encoding="big5")

    assert CODETABS.extract(response) == "美金 USD"


def test_unknown_charset_falls_back_to_utf8() -> None:
    response = RelayResponse(status_code=200, content="美金".encode(), encoding="no-such-codec")

    assert response.text == "美金"


def test_allorigins_json_unwraps_contents() -> None:
    response = RelayResponse(status_code=200, content=b'{"contents": "<table>USD</table>"}')

    assert ALLORIGINS_JSON.extract(response) == "<table>USD</table>"


def test_allorigins_json_rejects_missing_contents() -> None:
    response = RelayResponse(status_code=200, content=b'{"status": {"http_code": 500}}')

    with pytest.raises(ValueError):
        ALLORIGINS_JSON.extract(response)


def test_strategy_by_name_is_case_insensitive() -> None:
    assert strategy_by_name("codetabs") is CODETABS
    with pytest.raises(KeyError):
        strategy_by_name("Nope")


def test_order_strategies_reranks_and_dedupes() -> None:
    ordered = order_strategies(["AllOrigins", " CodeTabs ", "allorigins", ""])

    assert ordered == (ALLORIGINS, CODETABS)


def test_order_strategies_requires_a_name() -> None:
    with pytest.raises(ValueError):
        order_strategies(["", " "])
