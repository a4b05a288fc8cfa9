"""Punctuation-based sentence segmentation.

Splits text after every run of ``.``, ``!`` or ``?``.  Each sentence keeps
its terminal punctuation and any whitespace that preceded it, so the
sentences laid end to end reproduce the input exactly (minus trailing
whitespace).

There is no abbreviation or decimal handling: "Dr. Smith" and "3.14" both
split.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Either "anything up to and including a run of terminators" or, at the end
# of the text, "everything left over".  Every character of the input is
# covered by exactly one match.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+")


@dataclass(frozen=True)
class Sentence:
    """A sentence and its ``[start, end)`` character span in the source text."""

    text: str
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


def segment_spans(text: str) -> list[Sentence]:
    """Split *text* into sentences, tracking offsets with a running cursor.

    Text without any terminal punctuation comes back as a single sentence.
    Whitespace-only pieces are dropped; empty input returns ``[]``.
    """
    sentences: list[Sentence] = []
    for match in _SENTENCE_RE.finditer(text):
        piece = match.group()
        if not piece.strip():
            continue
        sentences.append(Sentence(text=piece, start=match.start(), end=match.end()))
    return sentences


def segment(text: str) -> list[str]:
    """Split *text* into an ordered list of sentence strings."""
    return [sentence.text for sentence in segment_spans(text)]
