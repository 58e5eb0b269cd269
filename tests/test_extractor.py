from __future__ import annotations

import math
import threading
import time
from types import SimpleNamespace
from typing import Any

import anthropic
import httpx
import pytest

from fx_twbank.config import PipelineSettings
from fx_twbank.errors import (
    EmptyResponseError,
    ExtractionServiceError,
    FetchCancelledError,
    MalformedResultError,
    MissingCredentialError,
)
from fx_twbank.ingestion.extractor import (
    RateExtractor,
    build_prompt,
    clean_json_payload,
    coerce_rate,
    coerce_record,
    parse_rate_payload,
)
from fx_twbank.ingestion.models import RateRecord


class _StubMessages:
    def __init__(self, reply: Any) -> None:
        self.reply = reply
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.reply, BaseException):
            raise self.reply
        return self.reply


def _client(reply: Any) -> SimpleNamespace:
    return SimpleNamespace(messages=_StubMessages(reply))


def _message(*texts: str) -> SimpleNamespace:
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text) for text in texts])


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("-", None),
        ("abc", None),
        ("", None),
        ("32.5", 32.5),
        (" 0.2695 ", 0.2695),
        (32, 32.0),
        (31.85, 31.85),
        (True, None),
        ([1], None),
        ({"v": 1}, None),
        (float("nan"), None),
        (float("inf"), None),
        ("NaN", None),
        ("Infinity", None),
        ("1_000", None),
        ("1e400", None),
    ],
)
def test_coerce_rate_is_total(raw: Any, expected: float | None) -> None:
    assert coerce_rate(raw) == expected


def test_coerce_rate_is_idempotent() -> None:
    for raw in (None, "-", "32.5", 31, "x", 1e-3):
        once = coerce_rate(raw)
        assert coerce_rate(once) == once


def test_coerce_record_is_idempotent() -> None:
    record = coerce_record(
        {"currency": "USD", "currencyName": "美金", "cashBuy": "31.5", "cashSell": "-", "spotBuy": 31.9}
    )

    assert record == RateRecord("USD", "美金", 31.5, None, 31.9, None)
    assert coerce_record(record.as_dict()) == record


def test_coerce_record_handles_wrong_shapes() -> None:
    assert coerce_record("USD") == RateRecord(currency="")
    assert coerce_record({"currency": None, "currencyName": 5}) == RateRecord("", "5")


def test_clean_json_payload_strips_fences_and_commentary() -> None:
    reply = 'Here you go:\n```json\n[{"currency": "USD"}, {"currency": "JPY"}]\n```\nHope it helps!'

    assert clean_json_payload(reply) == '[{"currency": "USD"}, {"currency": "JPY"}]'


def test_clean_json_payload_slices_first_to_last_bracket() -> None:
    reply = 'Sure! ```JSON [{"currency": "USD", "cashBuy": null}] ``` done'

    assert clean_json_payload(reply) == '[{"currency": "USD", "cashBuy": null}]'


def test_clean_json_payload_without_brackets_returns_stripped_text() -> None:
    assert clean_json_payload("  not json  ") == "not json"


def test_parse_rate_payload_rejects_non_json() -> None:
    with pytest.raises(MalformedResultError):
        parse_rate_payload(clean_json_payload("not json"))


@pytest.mark.parametrize("payload", ["[]", '{"currency": "USD"}', "42"])
def test_parse_rate_payload_requires_non_empty_array(payload: str) -> None:
    with pytest.raises(MalformedResultError) as excinfo:
        parse_rate_payload(payload)

    assert excinfo.value.payload == payload


def test_build_prompt_caps_source_and_lists_targets() -> None:
    prompt = build_prompt(
        "x" * 50,
        currencies=("USD", "JPY"),
        currency_names={"USD": "美金", "JPY": "日圓"},
        max_chars=10,
    )

    assert "Source: " + "x" * 10 + "\n" in prompt
    assert "x" * 11 not in prompt
    assert "Target: USD, JPY." in prompt
    assert "USD->美金, JPY->日圓" in prompt
    for field in ("cashBuy", "cashSell", "spotBuy", "spotSell", "currencyName"):
        assert field in prompt


def test_extract_sends_low_temperature_request() -> None:
    reply = _message('```json\n[{"currency": "USD", "currencyName": "美金", "cashBuy": "31.5", "cashSell": 32.1}]\n```')
    client = _client(reply)
    settings = PipelineSettings(api_key="k", model="test-model", max_prompt_chars=100)

    records = RateExtractor(settings, client=client).extract("Currency USD 31.5 32.1")

    assert records == [RateRecord("USD", "美金", 31.5, 32.1, None, None)]
    call = client.messages.calls[0]
    assert call["model"] == "test-model"
    assert call["temperature"] == pytest.approx(0.1)
    assert "JSON array" in call["system"]
    assert call["messages"][0]["role"] == "user"
    assert "Currency USD 31.5 32.1" in call["messages"][0]["content"]


def test_extract_joins_text_blocks() -> None:
    client = _client(_message('[{"currency": ', '"EUR"}]'))

    records = RateExtractor(PipelineSettings(api_key="k"), client=client).extract("EUR")

    assert [record.currency for record in records] == ["EUR"]


@pytest.mark.parametrize("reply", [_message(""), _message("   "), SimpleNamespace(content=[])])
def test_extract_empty_reply(reply: Any) -> None:
    with pytest.raises(EmptyResponseError):
        RateExtractor(PipelineSettings(api_key="k"), client=_client(reply)).extract("USD")


def test_extract_malformed_reply() -> None:
    with pytest.raises(MalformedResultError):
        RateExtractor(PipelineSettings(api_key="k"), client=_client(_message("not json"))).extract("USD")


def test_service_errors_are_wrapped() -> None:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    failure = anthropic.APIConnectionError(request=request)

    with pytest.raises(ExtractionServiceError) as excinfo:
        RateExtractor(PipelineSettings(api_key="k"), client=_client(failure)).extract("USD")

    assert excinfo.value.__cause__ is failure


def test_missing_credential_without_client() -> None:
    extractor = RateExtractor(PipelineSettings(api_key=None))

    with pytest.raises(MissingCredentialError):
        extractor.extract("USD")


def test_coerced_values_are_finite() -> None:
    records = parse_rate_payload('[{"currency": "USD", "cashBuy": 1e999, "cashSell": "-", "spotBuy": "31.9"}]')

    values = [records[0].cash_buy, records[0].cash_sell, records[0].spot_buy, records[0].spot_sell]
    assert all(value is None or math.isfinite(value) for value in values)
    assert records[0].spot_buy == 31.9


def test_client_is_bounded_and_does_not_retry(monkeypatch: pytest.MonkeyPatch) -> None:
    built: list[dict[str, Any]] = []

    class _RecordingAnthropic:
        def __init__(self, **kwargs: Any) -> None:
            built.append(kwargs)

    monkeypatch.setattr(anthropic, "Anthropic", _RecordingAnthropic)
    settings = PipelineSettings(api_key="k", completion_timeout=12.5)

    client = RateExtractor(settings).client

    assert isinstance(client, _RecordingAnthropic)
    assert built == [{"api_key": "k", "max_retries": 0, "timeout": 12.5}]


def test_cancel_abandons_in_flight_completion() -> None:
    release = threading.Event()
    cancel = threading.Event()

    class _HangingMessages:
        def create(self, **kwargs: Any) -> Any:
            release.wait(5)
            return _message("[]")

    class _HangingClient:
        def __init__(self) -> None:
            self.messages = _HangingMessages()
            self.closed = False

        def close(self) -> None:
            self.closed = True
            release.set()

    client = _HangingClient()
    timer = threading.Timer(0.2, cancel.set)
    started = time.monotonic()
    timer.start()
    try:
        with pytest.raises(FetchCancelledError):
            RateExtractor(PipelineSettings(api_key="k"), client=client).extract("USD", cancel_event=cancel)
    finally:
        timer.cancel()
        release.set()

    assert client.closed is True
    assert time.monotonic() - started < 3.0


def test_cancel_event_that_never_fires_returns_the_reply() -> None:
    client = _client(_message('[{"currency": "JPY"}]'))

    records = RateExtractor(PipelineSettings(api_key="k"), client=client).extract(
        "JPY", cancel_event=threading.Event()
    )

    assert [record.currency for record in records] == ["JPY"]
