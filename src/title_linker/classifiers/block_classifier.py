# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Block classifier for front matter and fenced code regions.

Labels every line of a document with exactly one BlockKind. The scan is an
explicit two-state automaton (metadata, code) driven by plain string checks, so
no pattern object carries match state from one line to the next.

Rules:
- Front matter opens only when the very first line is a solitary ``---`` and
  closes at the next solitary ``---``. Both delimiters are metadata. A ``---``
  line anywhere later never re-enters metadata mode. An unterminated block runs
  to the end of the document.
- Outside front matter, a line beginning with three backticks toggles code
  mode. Opening and closing fence lines are both code. An unterminated fence
  runs to the end of the document.
"""

import logging
from typing import List, Sequence

from ..models import BlockKind

logger = logging.getLogger(__name__)

METADATA_DELIMITER = "---"
FENCE_MARKER = "```"


class BlockClassifier:
    """Stateless classifier assigning a BlockKind to each line."""

    def name(self) -> str:
        return "BlockClassifier"

    def classify(self, lines: Sequence[str]) -> List[str]:
        """Classify lines into metadata, code and prose.

        Args:
            lines: Document lines without their ``\\n`` terminators. A trailing
                ``\\r`` is tolerated.

        Returns:
            List of BlockKind values, parallel to ``lines``.
        """
        kinds: List[str] = []
        in_metadata = bool(lines) and self._is_delimiter(lines[0])
        in_code = False

        for index, line in enumerate(lines):
            if in_metadata:
                kinds.append(BlockKind.METADATA)
                if index > 0 and self._is_delimiter(line):
                    in_metadata = False
                continue

            if line.startswith(FENCE_MARKER):
                # Fence lines belong to the block they open or close
                kinds.append(BlockKind.CODE)
                in_code = not in_code
                continue

            kinds.append(BlockKind.CODE if in_code else BlockKind.PROSE)

        if in_code:
            logger.debug("Unterminated code fence runs to end of document")
        return kinds

    @staticmethod
    def _is_delimiter(line: str) -> bool:
        return line.strip() == METADATA_DELIMITER
