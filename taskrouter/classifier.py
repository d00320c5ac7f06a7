"""Lexical request classifier mapping request text to domain tags."""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from taskrouter.registry import HandlerRegistry, get_registry
from taskrouter.schemas import Classification, DomainMatch, HandlerMatch

logger = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Match a keyword as a whole token; hyphens and word chars are token-internal."""
    parts = [re.escape(part) for part in keyword.split()]
    return re.compile(r"(?<![\w-])" + r"\s+".join(parts) + r"(?![\w-])")


def find_keywords(text: str, keywords: list[str] | tuple[str, ...]) -> dict[str, int]:
    """Find which keywords occur in text.

    Args:
        text: Request text
        keywords: Lowercase keywords to look for

    Returns:
        Mapping of matched keyword to the offset of its first occurrence
    """
    lowered = text.lower()
    found: dict[str, int] = {}
    for keyword in keywords:
        match = _keyword_pattern(keyword).search(lowered)
        if match:
            found[keyword] = match.start()
    return found


def classify(text: str, registry: HandlerRegistry | None = None) -> Classification:
    """Classify request text into an ordered set of domain tags.

    A tag matches when any keyword of any handler serving it occurs in the text.
    Tags are ordered by where their first keyword appears, ties broken by
    registry order. Each match lists every candidate handler for the tag along
    with how many of its own keywords matched (its specificity).

    Args:
        text: Free-form request text
        registry: Handler registry (defaults to the process-wide one)

    Returns:
        Classification, empty when nothing matched
    """
    registry = registry or get_registry()

    if not text or not text.strip():
        return Classification(text=text or "")

    matches: list[tuple[int, int, DomainMatch]] = []
    for order, tag in enumerate(registry.tags):
        found = find_keywords(text, registry.keywords_for(tag))
        if not found:
            continue

        candidates = []
        for handler in registry.handlers_for(tag):
            own = [k for k in handler.keywords if k in found]
            candidates.append(
                HandlerMatch(
                    name=handler.name,
                    specificity=len(own),
                    matched_keywords=tuple(own),
                )
            )

        position = min(found.values())
        matched = tuple(sorted(found, key=lambda k: (found[k], k)))
        matches.append((
            position,
            order,
            DomainMatch(
                tag=tag,
                matched_keywords=matched,
                rank=len(matched),
                position=position,
                candidates=tuple(candidates),
            ),
        ))

    matches.sort(key=lambda item: (item[0], item[1]))
    classification = Classification(text=text, matches=tuple(m for _, _, m in matches))
    logger.debug(f"Classified request into {classification.tags}")
    return classification


def select_handler(match: DomainMatch) -> tuple[str | None, list[str]]:
    """Reduce a domain match to one handler by keyword specificity.

    The handler with the most distinct matched keywords wins. A tag with a
    single candidate always resolves to it.

    Returns:
        (winner, tied) - winner is None when the top specificity is shared,
        in which case tied lists the equally specific candidates
    """
    if not match.candidates:
        return None, []
    if len(match.candidates) == 1:
        return match.candidates[0].name, []

    best = max(c.specificity for c in match.candidates)
    top = [c.name for c in match.candidates if c.specificity == best]
    if len(top) == 1:
        return top[0], []
    return None, top
