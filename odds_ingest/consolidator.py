"""Reduce a raw per-event odds map to one row per (oddID, line).

The provider lists a market once per oddID, each entry carrying a
``byBookmaker`` map of sportsbook quotes, and each sportsbook may carry its
own ``altLines``. Entries that describe the same oddID at the same line are
the same odds line and are merged; a different line is always a different
row.
"""

import json
from datetime import datetime
from typing import Any, Optional

from .config import CONSOLIDATED_SOURCE, SPORTSBOOKS, logger
from .type_safety import normalize_line, parse_american_odds, truncate_string
from .validation import validate_bookmaker_quote, validate_odd_data

# Priority order for the main line of an odd entry
LINE_FIELDS = ("bookSpread", "fairSpread", "bookOverUnder", "fairOverUnder")

# Priority order for the line of a sportsbook alternate line
ALT_LINE_FIELDS = ("spread", "overUnder")

_BOOK_ORDER = {book: index for index, book in enumerate(SPORTSBOOKS)}


def extract_line_value(odd: Any, fields: tuple = LINE_FIELDS) -> Optional[str]:
    """Return the normalized line of an odd entry, or None.

    The provider reports the line under one of several field names depending
    on bet type and on whether a book line exists. Fields are tried in a
    fixed order and the first non-empty value wins.

    Args:
        odd: Raw odd entry (or alternate line) dict
        fields: Field names to try, highest priority first

    Returns:
        Canonical line string (see normalize_line) or None for markets
        without a line, such as moneylines

    Examples:
        >>> extract_line_value({"bookSpread": "-6.5", "fairSpread": "-7"})
        '-6.5'
        >>> extract_line_value({"fairOverUnder": "8.50"})
        '8.5'
        >>> extract_line_value({"bookOdds": "-150"}) is None
        True
    """
    if not isinstance(odd, dict):
        return None
    for field in fields:
        line = normalize_line(odd.get(field))
        if line is not None:
            return line
    return None


def _book_sort_key(book: str) -> tuple:
    return (_BOOK_ORDER.get(book, len(_BOOK_ORDER)), book)


def representative_price(book_odds: Optional[int], quotes: dict) -> Optional[int]:
    """Pick the single price stored in bookodds for a consolidated row.

    The provider's consensus figure is trusted when present. Otherwise the
    first sportsbook quote in SPORTSBOOKS order (unknown books after, sorted
    by name) is used. Prices are never averaged.

    Examples:
        >>> representative_price(-110, {"fanduel": {"odds": -115}})
        -110
        >>> representative_price(None, {"zbook": {"odds": 105}, "draftkings": {"odds": -105}})
        -105
    """
    if book_odds is not None:
        return book_odds
    for book in sorted(quotes, key=_book_sort_key):
        price = quotes[book].get("odds")
        if price is not None:
            return price
    return None


class _Group:
    """Accumulates the entries sharing one (oddID, line) key."""

    def __init__(self, oddid: str, line: Optional[str], odd: dict):
        self.oddid = oddid
        self.line = line
        self.marketname = truncate_string(odd.get("marketName"), 50) or "unknown"
        self.bettypeid = truncate_string(odd.get("betTypeID"), 50) or "unknown"
        self.sideid = truncate_string(odd.get("sideID"), 50) or "unknown"
        self.book_odds = None
        self.quotes = {}
        self.entries = 0

    def check_labels(self, odd: dict) -> None:
        for field, current in (("betTypeID", self.bettypeid), ("sideID", self.sideid)):
            incoming = truncate_string(odd.get(field), 50)
            if incoming and incoming != current:
                logger.warning(
                    f"Conflicting {field} for {self.oddid} line {self.line}: "
                    f"keeping '{current}', ignoring '{incoming}'"
                )

    def add_quote(self, book: str, odds: Optional[int], link: Any) -> None:
        if odds is None:
            return
        self.quotes[book] = {"odds": odds, "link": link or None}


def _merge_entry(groups: dict, oddid: str, line: Optional[str], odd: dict) -> _Group:
    key = (oddid, line)
    group = groups.get(key)
    if group is None:
        group = _Group(oddid, line, odd)
        groups[key] = group
    else:
        group.check_labels(odd)
    group.entries += 1
    return group


def consolidate_odds(event_id: str, raw_odds: dict, fetched_at: datetime) -> list[dict]:
    """Consolidate one event's raw odds map into canonical odds line rows.

    Process:
        1. For each entry read oddID (falling back to the map key), labels,
           line (LINE_FIELDS priority) and the byBookmaker quotes
        2. Group by exact (oddID, normalized line); None is its own line
        3. Union sportsbook quotes per group, later entries overriding the
           same sportsbook; each sportsbook altLine lands in the group for
           its own line
        4. Pick the representative price (consensus first, never averaged)
        5. Stamp every row with the same fetched_at

    Args:
        event_id: Provider event ID
        raw_odds: Event odds map, oddID -> raw odd entry
        fetched_at: Timestamp of this fetch pass, shared by every row

    Returns:
        List of row dicts keyed uniquely by (eventid, oddid, line), with keys:
        eventid, oddid, line, line_key, marketname, bettypeid, sideid,
        bookodds, sportsbooks (JSON text), sportsbook, fetched_at,
        created_at, updated_at

    Examples:
        >>> rows = consolidate_odds("E1", {
        ...     "points-home-game-ml-home": {
        ...         "oddID": "points-home-game-ml-home",
        ...         "betTypeID": "ml", "sideID": "home", "bookOdds": "-150",
        ...     }
        ... }, datetime(2025, 8, 14, 18, 0))
        >>> rows[0]["bookodds"], rows[0]["line"]
        (-150, None)
    """
    if not raw_odds:
        return []

    groups: dict = {}

    for map_key, odd in raw_odds.items():
        if not isinstance(odd, dict):
            logger.warning(f"Skipping non-object odd entry {map_key} for event {event_id}")
            continue
        if not odd.get("oddID"):
            odd = dict(odd, oddID=map_key)
        if not validate_odd_data(odd):
            continue

        oddid = truncate_string(odd["oddID"], 100)
        line = extract_line_value(odd)
        group = _merge_entry(groups, oddid, line, odd)

        book_odds = parse_american_odds(odd.get("bookOdds"))
        if group.book_odds is None and book_odds is not None:
            group.book_odds = book_odds

        by_bookmaker = odd.get("byBookmaker") or {}
        for book, quote in by_bookmaker.items():
            if not isinstance(quote, dict):
                continue

            if validate_bookmaker_quote(quote):
                quote_line = extract_line_value(quote, LINE_FIELDS + ALT_LINE_FIELDS)
                target = group
                if quote_line is not None and quote_line != line:
                    # Book is quoting this market at its own line
                    target = _merge_entry(groups, oddid, quote_line, odd)
                target.add_quote(book, parse_american_odds(quote.get("odds")), quote.get("deeplink"))

            for alt in quote.get("altLines") or []:
                if not validate_bookmaker_quote(alt):
                    continue
                alt_line = extract_line_value(alt, ALT_LINE_FIELDS + LINE_FIELDS)
                alt_group = _merge_entry(groups, oddid, alt_line, odd)
                alt_group.add_quote(book, parse_american_odds(alt.get("odds")), alt.get("deeplink"))

    rows = []
    for group in groups.values():
        quotes = {book: group.quotes[book] for book in sorted(group.quotes, key=_book_sort_key)}
        rows.append({
            "eventid": event_id,
            "oddid": group.oddid,
            "line": group.line,
            "line_key": group.line if group.line is not None else "",
            "marketname": group.marketname,
            "bettypeid": group.bettypeid,
            "sideid": group.sideid,
            "bookodds": representative_price(group.book_odds, quotes),
            "sportsbooks": json.dumps(quotes, sort_keys=True),
            "sportsbook": CONSOLIDATED_SOURCE,
            "fetched_at": fetched_at,
            "created_at": fetched_at,
            "updated_at": fetched_at,
        })

    return rows


def consolidation_stats(raw_odds: dict, rows: list[dict]) -> dict:
    """Summarize how much consolidation shrank an event's odds map.

    Returns:
        Dict with raw_entries, consolidated_rows and reduction_pct
    """
    raw_count = len(raw_odds or {})
    reduction = ((raw_count - len(rows)) / raw_count * 100) if raw_count else 0.0
    return {
        "raw_entries": raw_count,
        "consolidated_rows": len(rows),
        "reduction_pct": round(reduction, 1),
    }
