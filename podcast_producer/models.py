"""Data models for podcast production."""

from dataclasses import dataclass, field

from podcast_producer.constants import SPEAKERS
from podcast_producer.errors import ScriptError


@dataclass
class Block:
    kind: str          # "main", "side_note", or "novel" (side-note content that survived dedup)
    text: str
    position: int
    note_type: str = ""    # tip/warning/info/note/caution, side notes only
    title: str = ""


@dataclass
class Document:
    source: str
    blocks: list[Block] = field(default_factory=list)
    title: str = ""

    def main_blocks(self) -> list[Block]:
        return [b for b in self.blocks if b.kind == "main"]

    def side_notes(self) -> list[Block]:
        return [b for b in self.blocks if b.kind == "side_note"]

    def char_count(self) -> int:
        return sum(len(b.text) for b in self.blocks)

    def to_prompt_text(self) -> str:
        """Render blocks for the script prompt.

        Side-note content is wrapped in pedagogical markers so the writer
        can tell reinforcement apart from main text.
        """
        parts = []
        for block in self.blocks:
            if block.kind == "main":
                parts.append(block.text)
            else:
                label = (block.note_type or "note").upper()
                parts.append(
                    f"[PEDAGOGICAL {label}: {block.title or 'Note'}]\n{block.text}\n[END NOTE]"
                )
        return "\n\n".join(parts)


@dataclass(frozen=True)
class Remove:
    position: int
    score: float


@dataclass(frozen=True)
class Condense:
    position: int
    score: float
    unique_text: str


@dataclass(frozen=True)
class Keep:
    position: int
    score: float


DedupDecision = Remove | Condense | Keep


@dataclass(frozen=True)
class Utterance:
    speaker: str
    text: str

    @property
    def line(self) -> str:
        return f"{self.speaker}: {self.text}"


@dataclass
class DialogueScript:
    utterances: list[Utterance]
    speakers: tuple[str, ...] = SPEAKERS

    def __post_init__(self):
        if not self.utterances:
            raise ScriptError("Dialogue script has no utterances")
        for utt in self.utterances:
            if utt.speaker not in self.speakers:
                raise ScriptError(
                    f"Undeclared speaker '{utt.speaker}' (declared: {', '.join(self.speakers)})"
                )

    def to_text(self) -> str:
        return "\n\n".join(u.line for u in self.utterances)


@dataclass
class Chunk:
    index: int
    utterances: list[Utterance]
    duration: float    # estimated seconds

    @property
    def text(self) -> str:
        return "\n\n".join(u.line for u in self.utterances)


@dataclass
class SynthesisResult:
    index: int
    pcm: bytes         # mono 16-bit little-endian at SAMPLE_RATE
    token_count: int


@dataclass
class AudioArtifact:
    path: str
    size: int
    format: str        # "audio/wav" or "audio/mpeg"
    token_count: int
    chunk_count: int
    duration_seconds: float
