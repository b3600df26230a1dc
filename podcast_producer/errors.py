"""Exception hierarchy for the podcast pipeline."""


class PodcastError(Exception):
    """Base class for pipeline failures."""


class InputError(PodcastError):
    """Lesson content is empty or too short to produce a podcast."""


class ScriptError(PodcastError):
    """Dialogue script is missing, malformed, or uses undeclared speakers."""


class PermanentError(PodcastError):
    """Synthesis failure that must not be retried."""


class ChunkTooLargeError(PermanentError):
    """Chunk token count exceeds the engine's request ceiling."""

    def __init__(self, index: int, token_count: int, limit: int):
        self.index = index
        self.token_count = token_count
        self.limit = limit
        super().__init__(
            f"Chunk {index + 1} exceeds token limit: {token_count} > {limit}. "
            "Split into smaller chunks."
        )


class EmptyAudioError(PermanentError):
    """Engine returned a well-formed response with no audio data."""


class AssemblyError(PodcastError):
    """WAV header and payload disagree. Indicates a bug, never retried."""


class MalformedResponseError(PermanentError):
    """Engine response lacks the expected audio structure."""
