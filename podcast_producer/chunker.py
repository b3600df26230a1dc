"""Split a dialogue into synthesis-sized chunks at speaker boundaries."""

import logging
from collections.abc import Callable

from podcast_producer.constants import (
    CHARS_PER_MINUTE,
    MAX_CHUNK_SECONDS,
    MIN_CHUNK_SECONDS,
    TARGET_CHUNK_SECONDS,
)
from podcast_producer.models import Chunk, DialogueScript, Utterance

logger = logging.getLogger(__name__)


def estimate_duration(text: str) -> float:
    """Estimated spoken seconds for text, from character count alone."""
    return len(text) / CHARS_PER_MINUTE * 60


def chunk_dialogue(
    script: DialogueScript,
    target: float = TARGET_CHUNK_SECONDS,
    max_duration: float = MAX_CHUNK_SECONDS,
    min_duration: float = MIN_CHUNK_SECONDS,
    estimator: Callable[[str], float] = estimate_duration,
) -> list[Chunk]:
    """Partition utterances into chunks.

    A chunk closes before an utterance that would push it past `target`,
    but only where the speaker changes. Past `max_duration` it closes
    regardless of speaker. An undersized final chunk is folded into the
    previous one when the result still fits under `max_duration`.
    """
    groups: list[tuple[list[Utterance], float]] = []
    current: list[Utterance] = []
    current_duration = 0.0

    for utt in script.utterances:
        duration = estimator(utt.text)

        if current:
            new_turn = utt.speaker != current[-1].speaker
            over_target = current_duration + duration > target
            over_max = current_duration + duration > max_duration

            if over_max and not new_turn:
                logger.warning(
                    "Chunk would exceed max duration (%.1f min), forcing split mid-turn",
                    (current_duration + duration) / 60,
                )
            if (over_target and new_turn) or over_max:
                groups.append((current, current_duration))
                current = []
                current_duration = 0.0

        if duration > max_duration:
            logger.warning(
                "Single utterance exceeds max duration (%.1f min)", duration / 60
            )
        current.append(utt)
        current_duration += duration

    if current:
        groups.append((current, current_duration))

    if len(groups) > 1 and groups[-1][1] < min_duration:
        last, last_duration = groups.pop()
        prev, prev_duration = groups.pop()
        merged_duration = prev_duration + last_duration
        if merged_duration > max_duration:
            logger.warning(
                "Merged chunk would exceed max duration (%.1f min), keeping original split",
                merged_duration / 60,
            )
            groups.append((prev, prev_duration))
            groups.append((last, last_duration))
        else:
            logger.info(
                "Merged small final chunk (%.1f min) into previous chunk", last_duration / 60
            )
            groups.append((prev + last, merged_duration))

    return [
        Chunk(index=i, utterances=utts, duration=duration)
        for i, (utts, duration) in enumerate(groups)
    ]
