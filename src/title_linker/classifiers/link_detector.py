# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Existing-link detector.

Flags every line that already contains a hyperlink. This is a coarse,
line-granular guard: any URL-like substring anywhere on the line excludes the
whole line from title rewriting, even when the URL is far from a title
occurrence.

Patterns detected:
- Markdown link with a URL target: [text](scheme://...)
- Bare URL: scheme://...
"""

import re
from typing import List, Sequence

# [text](scheme://target)
MARKDOWN_URL_LINK = re.compile(r"\[[^\]]+?\]\([A-Za-z][A-Za-z0-9+.\-]*://[^\s)]+?\)")

# scheme://anything-up-to-whitespace
BARE_URL = re.compile(r"\b[A-Za-z][A-Za-z0-9+.\-]*://\S+")


class ExistingLinkDetector:
    """Stateless detector for lines that already hold a link.

    Uses search() on compiled patterns, which keeps no position between calls.
    """

    def name(self) -> str:
        return "ExistingLinkDetector"

    def has_link(self, line: str) -> bool:
        return bool(MARKDOWN_URL_LINK.search(line) or BARE_URL.search(line))

    def detect(self, lines: Sequence[str]) -> List[bool]:
        """Return a has-existing-link flag for every line."""
        return [self.has_link(line) for line in lines]
