"""Narrow fetched text down to the rate table before it reaches the model."""

from __future__ import annotations

from bs4 import BeautifulSoup

from fx_twbank.ingestion.strategy import ProxyStrategy
from fx_twbank.utils.logger import get_logger

LOGGER = get_logger(__name__)

# Most specific first; the bare ``<table`` is the last resort.
TABLE_MARKERS: tuple[str, ...] = (
    '<table title="牌告匯率"',
    '<table title="Exchange Rate"',
    "<table",
)
EMPTY_CELL = "-"


def localize(text: str, strategy: ProxyStrategy, markers: tuple[str, ...] = TABLE_MARKERS) -> str:
    """Return ``text`` starting at the first table marker found.

    Reader-style relays (``strategy.condensed``) already strip the page down to
    prose, so their output is used whole. Without a marker the text is kept as
    fetched.
    """

    if strategy.condensed:
        return text
    for marker in markers:
        index = text.find(marker)
        if index != -1:
            LOGGER.debug("Localized %s output at marker %r (offset %s)", strategy.name, marker, index)
            return text[index:]
    LOGGER.debug("No table marker found in %s output; keeping full text", strategy.name)
    return text


def condense_table_html(html: str) -> str:
    """Render the first ``<table>`` as one `` | ``-joined line per row.

    Markup and attributes are dropped; every row that has cell text is kept.
    Empty cells stay in place as :data:`EMPTY_CELL` so columns line up.
    Returns ``html`` unchanged when there is no table to condense.
    """

    def _cell_text(cell) -> str:
        return " ".join(cell.stripped_strings).strip()

    soup = BeautifulSoup(html, "html.parser")
    table = soup.find("table")
    if table is None:
        return html
    lines: list[str] = []
    for tr in table.find_all("tr"):
        cells = [_cell_text(cell) for cell in tr.find_all(["th", "td"])]
        if any(cells):
            lines.append(" | ".join(cell or EMPTY_CELL for cell in cells))
    if not lines:
        return html
    return "\n".join(lines)


__all__ = ["EMPTY_CELL", "TABLE_MARKERS", "condense_table_html", "localize"]
