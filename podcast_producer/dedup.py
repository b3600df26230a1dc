"""Remove side-notes that restate nearby main content."""

import logging
from dataclasses import dataclass, field

from podcast_producer.constants import (
    DEDUP_CONTEXT_WINDOW,
    DEDUP_HIGH_DEFAULT,
    DEDUP_HIGH_THRESHOLDS,
    DEDUP_LOW_THRESHOLD,
    MIN_CONDENSED_CHARS,
    UNIQUE_SENTENCE_THRESHOLD,
)
from podcast_producer.models import Block, Condense, DedupDecision, Document, Keep, Remove
from podcast_producer.similarity import extract_unique, score

logger = logging.getLogger(__name__)


@dataclass
class DedupThresholds:
    high: dict[str, float] = field(default_factory=lambda: dict(DEDUP_HIGH_THRESHOLDS))
    high_default: float = DEDUP_HIGH_DEFAULT
    low: float = DEDUP_LOW_THRESHOLD
    unique_sentence: float = UNIQUE_SENTENCE_THRESHOLD
    min_condensed_chars: int = MIN_CONDENSED_CHARS
    context_window: int = DEDUP_CONTEXT_WINDOW

    def high_for(self, note_type: str) -> float:
        return self.high.get(note_type.lower(), self.high_default)


@dataclass
class DedupResult:
    document: Document
    decisions: list[DedupDecision]

    def counts(self) -> dict[str, int]:
        counts = {"remove": 0, "condense": 0, "keep": 0}
        for d in self.decisions:
            counts[type(d).__name__.lower()] += 1
        return counts


def local_context(document: Document, block: Block, window: int = DEDUP_CONTEXT_WINDOW) -> str:
    """Main text immediately around a side-note.

    Up to `window` main blocks before and `window` after the side-note's
    position; distant content is never considered.
    """
    before = [b for b in document.blocks if b.kind == "main" and b.position < block.position]
    after = [b for b in document.blocks if b.kind == "main" and b.position > block.position]
    nearby = before[-window:] if window > 0 else []
    nearby += after[:window]
    return "\n\n".join(b.text for b in nearby)


def decide(block: Block, context: str, thresholds: DedupThresholds | None = None) -> DedupDecision:
    """Classify one side-note against its context. First matching rule wins."""
    if thresholds is None:
        thresholds = DedupThresholds()

    overlap = score(block.text, context)
    high = thresholds.high_for(block.note_type)

    if overlap >= high:
        return Remove(block.position, overlap)

    if overlap >= thresholds.low:
        unique = extract_unique(context, block.text, thresholds.unique_sentence)
        if len(unique) < thresholds.min_condensed_chars:
            return Remove(block.position, overlap)
        return Condense(block.position, overlap, unique)

    return Keep(block.position, overlap)


def deduplicate(document: Document, thresholds: DedupThresholds | None = None) -> DedupResult:
    """Apply remove/condense/keep to every side-note.

    Surviving side-notes are re-tagged "novel", so running this again on
    the output makes no further decisions.
    """
    if thresholds is None:
        thresholds = DedupThresholds()

    blocks = []
    decisions = []
    for block in document.blocks:
        if block.kind != "side_note":
            blocks.append(block)
            continue

        context = local_context(document, block, thresholds.context_window)
        decision = decide(block, context, thresholds)
        decisions.append(decision)
        logger.debug(
            "Side-note at %d (%s): %s (score %.2f)",
            block.position, block.note_type, type(decision).__name__, decision.score,
        )

        if isinstance(decision, Remove):
            continue
        text = decision.unique_text if isinstance(decision, Condense) else block.text
        blocks.append(Block(
            kind="novel",
            text=text,
            position=block.position,
            note_type=block.note_type,
            title=block.title,
        ))

    return DedupResult(
        document=Document(source=document.source, blocks=blocks, title=document.title),
        decisions=decisions,
    )
