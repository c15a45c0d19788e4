# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Rewrite engine: turns a document's text into linked text.

Pure function of (content, catalog titles, own title). No I/O and no shared
state, so it is safe to call repeatedly and on different documents at once.

Workflow:
1. Split the content on ``\\n`` (terminators are restored on join, and a
   trailing ``\\r`` stays part of its line)
2. Classify every line once (front matter, fenced code, existing links)
3. Compile one TitleMatcher for the document
4. Rewrite eligible lines; pass every other line through unchanged
5. Rejoin in original order and sum the per-line link counts
"""

import logging
from typing import Iterable, List

from title_linker.classifiers import classify_lines
from title_linker.models import RewriteResult
from title_linker.title_matcher import LinkCase, TitleMatcher

logger = logging.getLogger(__name__)


def rewrite(
    content: str,
    catalog_titles: Iterable[str],
    own_title: str,
    link_case: str = LinkCase.LOWER,
    protect_inline_code: bool = True,
) -> RewriteResult:
    """Link every eligible title occurrence in a document.

    Args:
        content: Full document text.
        catalog_titles: Titles of the documents in scope. The own title may be
            included; it is never linked.
        own_title: Title of the document being rewritten.
        link_case: LinkCase value for the inserted link target.
        protect_inline_code: Whether inline code spans are left untouched.

    Returns:
        RewriteResult with the new content and the number of links added.
        When no link is added the content is returned unchanged.
    """
    lines = content.split("\n")
    classifications = classify_lines(lines)
    matcher = TitleMatcher(
        catalog_titles,
        own_title,
        link_case=link_case,
        protect_inline_code=protect_inline_code,
        content_hint=content,
    )

    if matcher.title_count == 0:
        return RewriteResult(content=content, links_added=0)

    output: List[str] = []
    linked_titles: List[str] = []
    links_added = 0
    for line, classification in zip(lines, classifications):
        if not classification.is_eligible:
            output.append(line)
            continue
        new_line, count, titles = matcher.rewrite_line(line)
        output.append(new_line)
        links_added += count
        linked_titles.extend(titles)

    if links_added == 0:
        return RewriteResult(content=content, links_added=0)

    logger.debug(f"Rewrote '{own_title}': {links_added} links added")
    return RewriteResult(
        content="\n".join(output),
        links_added=links_added,
        linked_titles=linked_titles,
    )
