"""Split document text into paragraph segments."""

from __future__ import annotations

import re
from typing import Iterable, List

from docmind.models import Document, Segment

BLANK_LINE_PATTERN = r"\n\n+"


def split_segments(text: str, pattern: str = BLANK_LINE_PATTERN) -> List[str]:
    """Return trimmed, non-empty pieces of ``text`` split on blank lines."""

    pieces = re.split(pattern, text or "")
    return [piece.strip() for piece in pieces if piece.strip()]


def segment_documents(documents: Iterable[Document], pattern: str = BLANK_LINE_PATTERN) -> List[Segment]:
    segments: List[Segment] = []
    for document in documents:
        for piece in split_segments(document.content, pattern):
            segments.append(Segment(content=piece, source=document.name))
    return segments
