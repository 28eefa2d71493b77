"""
Exam Slug Normalization
=======================
Collapses the many raw exam slugs a provider publishes (``1z0-1042-20``,
``1z0-1042-23``, ``exam-core-v2``) onto one canonical exam code, and
decides whether a discussion link belongs to a selected exam.

Version collapsing is driven by an ordered rule table: the first rule whose
provider filter and pattern both match wins.  Adding a vendor quirk means
adding a row, not another branch.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional, Sequence

# Selection sentinel meaning "every discussion of the provider".
ALL_DISCUSSIONS = "all-discussions"

_EXAM_FROM_DISCUSSION_RE = re.compile(
    r'-exam-([a-z0-9-]+?)(?:-topic-|-question-|/|$)', re.IGNORECASE
)
_ORACLE_VERSIONED_RE = re.compile(r'^(1z\d-\d{3,4})-\d{1,2}$', re.IGNORECASE)
_ORACLE_BASE_CODE_RE = re.compile(r'^1z\d-\d{3,4}$', re.IGNORECASE)
_TRAILING_VERSION_RE = re.compile(r'^(?:\d{2}|\d{4}|v\d+|ver\d+|rev\d+)$', re.IGNORECASE)


@dataclass(frozen=True)
class SlugRule:
    """One version-collapsing rule.

    ``providers`` limits the rule to those provider ids (empty = any);
    ``transform`` returns the canonical slug, or None when it does not apply.
    """
    name: str
    transform: Callable[[str], Optional[str]]
    providers: FrozenSet[str] = frozenset()

    def applies_to(self, provider: str) -> bool:
        return not self.providers or provider in self.providers


def _oracle_version(slug: str) -> Optional[str]:
    # 1z0-1042-20 -> 1z0-1042
    match = _ORACLE_VERSIONED_RE.match(slug)
    return match.group(1) if match else None


def _trailing_version(slug: str) -> Optional[str]:
    # <base>-v2, <base>-2024, <base>-23, <base>-rev3
    parts = slug.split("-")
    if len(parts) >= 3 and _TRAILING_VERSION_RE.match(parts[-1].strip()):
        return "-".join(parts[:-1])
    return None


SLUG_RULES: Sequence[SlugRule] = (
    SlugRule("oracle-version", _oracle_version, frozenset({"oracle"})),
    SlugRule("trailing-version", _trailing_version),
)


class SlugNormalizer:
    """Applies an ordered rule table to raw exam slugs."""

    def __init__(self, rules: Sequence[SlugRule] = SLUG_RULES):
        self.rules = tuple(rules)

    def normalize(self, provider: str, raw: str) -> str:
        """Canonical exam code for ``raw`` under ``provider``; ``""`` for blank input."""
        provider = (provider or "").strip().lower()
        slug = (raw or "").strip().lower()
        if not slug:
            return ""

        for rule in self.rules:
            if not rule.applies_to(provider):
                continue
            canonical = rule.transform(slug)
            if canonical is not None:
                return canonical.strip()
        return slug

    def matches(self, provider: str, selection: str, link: str) -> bool:
        """
        Decide whether a discussion link belongs to the selected exam.

        An empty selection (or the all-discussions sentinel) matches every
        link.  Links carrying an ``-exam-<slug>`` segment are compared on
        canonical codes; anything else falls back to substring matching.
        """
        provider = (provider or "").strip().lower()
        selection = (selection or "").strip().lower()
        if not selection or selection == ALL_DISCUSSIONS:
            return True
        selected = self.normalize(provider, selection)

        link = (link or "").strip().lower()
        if not link:
            return False

        link_slug = extract_exam_slug(link)
        if link_slug:
            return self.normalize(provider, link_slug) == selected

        if provider == "oracle" and _ORACLE_BASE_CODE_RE.match(selected):
            variant = re.compile(
                r'(?:^|[-/])' + re.escape(selected) + r'-\d{1,2}(?:[-/]|$)',
                re.IGNORECASE,
            )
            if variant.search(link):
                return True

        return selection in link or selected in link

    def variant_summary(self, provider: str, selection: str, links: Iterable[str]) -> str:
        """
        Human-readable list of the raw slugs grouped under the selection,
        e.g. ``Including grouped variants for 1z0-1042: 1z0-1042-20 (3), ...``.

        Empty when nothing was grouped or the only variant is the canonical
        code itself.
        """
        selection = (selection or "").strip().lower()
        if not selection or selection == ALL_DISCUSSIONS:
            return ""
        selected = self.normalize(provider, selection)
        if not selected:
            return ""

        counts = Counter()
        for link in links:
            raw = extract_exam_slug(link)
            if raw and self.normalize(provider, raw) == selected:
                counts[raw] += 1

        if not counts:
            return ""
        variants = sorted(counts)
        if variants == [selected]:
            return ""

        listed = ", ".join(f"{slug} ({counts[slug]})" for slug in variants)
        return f"Including grouped variants for {selected}: {listed}"


def extract_exam_slug(link: str) -> str:
    """Raw exam slug embedded in a discussion link, or ``""``."""
    link = (link or "").strip().lower()
    if not link:
        return ""
    match = _EXAM_FROM_DISCUSSION_RE.search(link)
    if not match:
        return ""
    return match.group(1).strip("- ")


def exam_slug_from_exam_link(provider: str, link: str) -> str:
    """Slug part of an official ``/exams/<provider>/<slug>/`` path, or ``""``."""
    provider = (provider or "").strip().lower()
    pattern = re.compile(
        r'^/exams/' + re.escape(provider) + r'/([a-z0-9-]+)/?$', re.IGNORECASE
    )
    match = pattern.match((link or "").strip().lower())
    return match.group(1).strip() if match else ""


# Module-level shortcuts bound to the default rule table
_default = SlugNormalizer()


def normalize_exam_slug(provider: str, raw: str) -> str:
    return _default.normalize(provider, raw)


def matches(provider: str, selection: str, link: str) -> bool:
    return _default.matches(provider, selection, link)


def variant_summary(provider: str, selection: str, links: Iterable[str]) -> str:
    return _default.variant_summary(provider, selection, links)
