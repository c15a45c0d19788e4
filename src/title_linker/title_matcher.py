# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Title matcher: finds note-title occurrences in a line and wraps them in links.

Matching semantics:
- Case-insensitive, whole-word: a match may not touch a word character on
  either side, so titles that begin or end in punctuation still match.
- Never inside an existing ``[[wiki-link]]``, a markdown ``[label](target)``
  link or image, or (optionally) an inline code span of the pre-rewrite line.
- The lookarounds also refuse positions right after ``[[`` or ``](`` and right
  before ``]]`` or a parenthesised ``(...)`` group.
- The document's own title is never matched.

All titles are compiled into a single alternation, longest first, so each line
is scanned once regardless of catalog size. The scan is leftmost-longest and
every span is computed against the pre-rewrite line before any replacement is
applied, so inserted link syntax is never re-matched.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from title_linker.models import TitleMatch

logger = logging.getLogger(__name__)


class LinkCase:
    """How the link target is written inside ``[[...]]``."""

    LOWER = "lower"  # [[bar]] for title "Bar"
    CATALOG = "catalog"  # [[Bar]] for title "Bar"

    ALL = (LOWER, CATALOG)


# Spans of the pre-rewrite line that must never receive a link
_WIKI_LINK = re.compile(r"\[\[.*?\]\]")
_MARKDOWN_LINK = re.compile(r"!?\[[^\]]*\]\([^)]*\)")
_INLINE_CODE = re.compile(r"(`+).+?\1")


def build_catalog(titles: Iterable[str], own_title: str) -> Dict[str, str]:
    """Build the title catalog used for one document.

    Titles are keyed by their lowercased form. The first occurrence in
    iteration order supplies the casing. Blank titles and the document's own
    title are dropped.

    Args:
        titles: Titles of every document in scope.
        own_title: Title of the document being processed.

    Returns:
        Mapping of lowercased title to catalog casing, in iteration order.
    """
    own_key = own_title.lower()
    catalog: Dict[str, str] = {}
    for title in titles:
        if not title or not title.strip():
            continue
        key = title.lower()
        if key == own_key or key in catalog:
            continue
        catalog[key] = title
    return catalog


class TitleMatcher:
    """Compiled matcher for one document's title catalog.

    Instances are immutable after construction and hold no per-call state,
    so one matcher may be applied to every line of a document.
    """

    def __init__(
        self,
        titles: Iterable[str],
        own_title: str,
        link_case: str = LinkCase.LOWER,
        protect_inline_code: bool = True,
        content_hint: Optional[str] = None,
    ):
        """Compile the matcher.

        Args:
            titles: Candidate titles (may include the own title; it is removed).
            own_title: Title of the document being processed.
            link_case: LinkCase value for the inserted link target.
            protect_inline_code: Whether inline code spans are left untouched.
            content_hint: Full document text. When given, titles that do not
                occur in it are dropped before compiling.

        Raises:
            ValueError: If link_case is not a LinkCase value.
        """
        if link_case not in LinkCase.ALL:
            raise ValueError(f"Unknown link case '{link_case}', expected one of {LinkCase.ALL}")

        self._link_case = link_case
        self._protect_inline_code = protect_inline_code

        catalog = build_catalog(titles, own_title)
        if content_hint is not None:
            haystack = content_hint.lower()
            catalog = {key: title for key, title in catalog.items() if key in haystack}
        self._catalog = catalog
        self._pattern = self._compile(catalog)

        logger.debug(f"Compiled title matcher with {len(catalog)} candidate titles")

    @property
    def title_count(self) -> int:
        return len(self._catalog)

    @staticmethod
    def _compile(catalog: Dict[str, str]) -> Optional[Pattern[str]]:
        if not catalog:
            return None
        # Longest first so the alternation prefers the longest title at a position
        ordered = sorted(catalog.values(), key=lambda t: (-len(t), t.lower()))
        alternation = "|".join(re.escape(title) for title in ordered)
        return re.compile(
            r"(?<!\w)(?<!\[\[)(?<!\]\()"
            rf"(?:{alternation})"
            r"(?!\w)(?!\]\])(?!\([^)]*\))",
            re.IGNORECASE,
        )

    def _protected_spans(self, line: str) -> List[Tuple[int, int]]:
        patterns = [_WIKI_LINK, _MARKDOWN_LINK]
        if self._protect_inline_code:
            patterns.append(_INLINE_CODE)
        spans = []
        for pattern in patterns:
            spans.extend(m.span() for m in pattern.finditer(line))
        return spans

    def _resolve_title(self, matched_text: str) -> str:
        title = self._catalog.get(matched_text.lower())
        if title is not None:
            return title
        # Case folding that does not round-trip through lower()
        for candidate in self._catalog.values():
            if re.fullmatch(re.escape(candidate), matched_text, re.IGNORECASE):
                return candidate
        return matched_text

    def _link_target(self, title: str) -> str:
        if self._link_case == LinkCase.CATALOG:
            return title
        return title.lower()

    def find_matches(self, line: str) -> List[TitleMatch]:
        """Find all non-overlapping title occurrences in a line.

        Args:
            line: One eligible line of prose.

        Returns:
            Matches in left-to-right order. Empty if nothing matches.
        """
        if self._pattern is None or not line:
            return []

        protected = self._protected_spans(line)
        matches: List[TitleMatch] = []
        pos = 0
        while pos <= len(line):
            found = self._pattern.search(line, pos)
            if found is None:
                break
            start, end = found.span()
            if any(start < p_end and p_start < end for p_start, p_end in protected):
                pos = start + 1
                continue
            title = self._resolve_title(found.group(0))
            matches.append(
                TitleMatch(start=start, end=end, title=title, link_target=self._link_target(title))
            )
            pos = end
        return matches

    def rewrite_line(self, line: str) -> Tuple[str, int, List[str]]:
        """Replace every title occurrence in a line with a wiki-link.

        Args:
            line: One eligible line of prose.

        Returns:
            Tuple of (rewritten line, links inserted, titles linked in order).
        """
        matches = self.find_matches(line)
        if not matches:
            return line, 0, []

        parts: List[str] = []
        cursor = 0
        for match in matches:
            parts.append(line[cursor : match.start])
            parts.append(f"[[{match.link_target}]]")
            cursor = match.end
        parts.append(line[cursor:])
        return "".join(parts), len(matches), [m.title for m in matches]
