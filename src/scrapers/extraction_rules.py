# src/scrapers/extraction_rules.py

"""Ordered fallback rules for pulling listing fields out of result cards.

A rule is a pure function taking one result card and returning a value or
``None`` for "no match".  Each field has a prioritised list of rules; the
first rule yielding a non-empty value wins.  Markup drift is absorbed by
adding a rule to the list rather than by changing control flow.
"""

import re
from collections.abc import Callable, Iterable
from typing import TypeVar

from bs4 import Tag

T = TypeVar("T")

Rule = Callable[[Tag], T | None]

_DIGITS_RE = re.compile(r"\d+")


def first_match(rules: Iterable[Rule[T]], card: Tag) -> T | None:
    """Return the first non-empty value produced by *rules* on *card*."""
    for rule in rules:
        value = rule(card)
        if value:
            return value
    return None


def parse_price(text: str | None) -> int:
    """Parse a price like ``"12.999"`` into ``12999``.

    Dots are thousands separators on the marketplace and a comma starts
    the cents, which are dropped.  Text without digits parses as 0.
    """
    if not text:
        return 0
    match = _DIGITS_RE.search(text.replace(".", ""))
    return int(match.group()) if match else 0


# ── Rule factories ───────────────────────────────────────


def text_rule(selector: str) -> Rule[str]:
    """Stripped text of the first element matching *selector*."""

    def rule(card: Tag) -> str | None:
        el = card.select_one(selector)
        if el is None:
            return None
        text = el.get_text(strip=True)
        return text or None

    return rule


def attr_rule(selector: str, *attrs: str) -> Rule[str]:
    """First non-empty attribute among *attrs* on the matched element."""

    def rule(card: Tag) -> str | None:
        el = card.select_one(selector)
        if el is None:
            return None
        for attr in attrs:
            value = el.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            if value:
                return str(value)
        return None

    return rule


def price_rule(selector: str) -> Rule[int]:
    """Integer price from the matched element; zero counts as no match."""

    def rule(card: Tag) -> int | None:
        el = card.select_one(selector)
        if el is None:
            return None
        return parse_price(el.get_text()) or None

    return rule


def contains_rule(selector: str, token: str) -> Rule[bool]:
    """True when the matched element's text contains *token*."""
    lowered = token.lower()

    def rule(card: Tag) -> bool | None:
        el = card.select_one(selector)
        if el is None:
            return None
        return lowered in el.get_text().lower() or None

    return rule
