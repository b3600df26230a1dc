"""Shared fixtures for podcast producer tests."""

import pytest

from podcast_producer.models import Block, DialogueScript, Document, Utterance


MAIN_TEXT = (
    "Context windows limit how much code an agent can reason about at once. "
    "When the window fills, earlier instructions fall out of attention and the "
    "agent starts repeating mistakes it already corrected. Keep sessions focused "
    "on a single task and restart them when the conversation drifts."
)


@pytest.fixture
def sample_document():
    """Main content with one redundant and one novel side note."""
    return Document(
        source="lesson-1/context.md",
        title="Context",
        blocks=[
            Block(kind="main", text=MAIN_TEXT, position=0),
            Block(
                kind="side_note",
                text="Context windows limit how much code an agent can reason about at once. "
                     "When the window fills, earlier instructions fall out of attention.",
                position=1,
                note_type="tip",
                title="Remember",
            ),
            Block(
                kind="side_note",
                text="Billing dashboards expose per-request costs, which makes budget "
                     "regressions visible within hours instead of weeks.",
                position=2,
                note_type="info",
                title="Costs",
            ),
        ],
    )


@pytest.fixture
def sample_script():
    """Four short alternating turns."""
    return DialogueScript(utterances=[
        Utterance("Alex", "Welcome back. Today we look at context windows."),
        Utterance("Sam", "The part where agents forget what you told them?"),
        Utterance("Alex", "Exactly that. Attention degrades as the window fills."),
        Utterance("Sam", "So shorter sessions beat one long conversation."),
    ])


@pytest.fixture
def pcm_second():
    """One second of 24 kHz mono 16-bit silence."""
    return b"\x00\x00" * 24000


@pytest.fixture
def main_text():
    return MAIN_TEXT
