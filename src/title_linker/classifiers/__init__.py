# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Line classifiers deciding which lines are eligible for title rewriting.

Components:
- BlockClassifier: front matter / fenced code / prose regions
- ExistingLinkDetector: lines already holding a URL link
- classify_lines: combines both into a LineClassification vector
"""

from typing import List, Sequence

from title_linker.classifiers.block_classifier import BlockClassifier
from title_linker.classifiers.link_detector import ExistingLinkDetector
from title_linker.models import LineClassification


def classify_lines(lines: Sequence[str]) -> List[LineClassification]:
    """Run both classifiers once over the document lines.

    Args:
        lines: Document lines without ``\\n`` terminators.

    Returns:
        One LineClassification per line.
    """
    kinds = BlockClassifier().classify(lines)
    links = ExistingLinkDetector().detect(lines)
    return [
        LineClassification(block_kind=kind, has_existing_link=has_link)
        for kind, has_link in zip(kinds, links)
    ]


__all__ = [
    "BlockClassifier",
    "ExistingLinkDetector",
    "classify_lines",
]
