from __future__ import annotations

from fx_twbank.ingestion.localizer import condense_table_html, localize
from fx_twbank.ingestion.strategy import CODETABS, JINA_READER

PAGE = (
    "<html><head><title>Bank of Taiwan</title></head><body>"
    "<table class='nav'><tr><td>menu</td></tr></table>"
    '<table title="Exchange Rate"><tr><th>Currency</th><th>Cash Buying</th></tr>'
    "<tr><td>American Dollar (USD)</td><td>32.1</td></tr></table>"
    "</body></html>"
)


def test_specific_marker_wins_over_generic_table() -> None:
    localized = localize(PAGE, CODETABS)

    assert localized.startswith('<table title="Exchange Rate"')
    assert localized.endswith("</body></html>")
    assert "menu" not in localized


def test_chinese_title_marker_has_highest_priority() -> None:
    page = '<table title="Exchange Rate">x</table><table title="牌告匯率">y</table>'

    assert localize(page, CODETABS) == '<table title="牌告匯率">y</table>'


def test_falls_back_to_first_table() -> None:
    page = "<p>intro</p><table><tr><td>USD</td></tr></table>"

    assert localize(page, CODETABS) == "<table><tr><td>USD</td></tr></table>"


def test_text_without_markers_is_kept() -> None:
    text = "Currency USD 32.1 32.6"

    assert localize(text, CODETABS) == text


def test_condensed_relay_output_is_used_whole() -> None:
    assert localize(PAGE, JINA_READER) == PAGE


def test_condense_table_html_keeps_every_row() -> None:
    condensed = condense_table_html(localize(PAGE, CODETABS))

    assert condensed.splitlines() == [
        "Currency | Cash Buying",
        "American Dollar (USD) | 32.1",
    ]


def test_condense_table_html_keeps_empty_cells_in_their_column() -> None:
    html = (
        "<table><tr><th>Currency</th><th>Cash Buying</th><th>Cash Selling</th></tr>"
        "<tr><td>Korean Won (KRW)</td><td></td><td>0.0254</td></tr>"
        "<tr><td> </td><td></td></tr></table>"
    )

    assert condense_table_html(html).splitlines() == [
        "Currency | Cash Buying | Cash Selling",
        "Korean Won (KRW) | - | 0.0254",
    ]


def test_condense_table_html_without_table_is_identity() -> None:
    assert condense_table_html("USD 32.1") == "USD 32.1"
