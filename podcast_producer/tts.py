"""TTS synthesis with token preflight, retry logic, and ordered dispatch."""

import asyncio
import base64
import io
import logging
import os
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed

import edge_tts
from google import genai
from google.genai import types
from pydub import AudioSegment

from podcast_producer.constants import (
    BITS_PER_SAMPLE,
    CHANNELS,
    DEFAULT_WORKERS,
    EDGE_RATE,
    EDGE_SPEAKER_GAP_MS,
    EDGE_VOICES,
    GEMINI_VOICES,
    PERMANENT_STATUS,
    RETRYABLE_STATUS,
    SAMPLE_RATE,
    TOKEN_LIMIT,
    TOKEN_SAFETY_MARGIN,
    TTS_MODEL,
    TTS_RETRY_BASE_DELAY,
    TTS_RETRY_COUNT,
)
from podcast_producer.errors import (
    ChunkTooLargeError,
    EmptyAudioError,
    MalformedResponseError,
    PermanentError,
    PodcastError,
)
from podcast_producer.models import Chunk, SynthesisResult
from podcast_producer.parser import estimate_token_count, parse_dialogue

logger = logging.getLogger(__name__)

_NETWORK_MARKERS = ("fetch failed", "econnreset", "etimedout", "enotfound", "timed out", "connection reset")


# --- Error classification and retry ---

def error_status(error: Exception) -> int | None:
    """HTTP status carried by an engine exception, if any."""
    for attr in ("code", "status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def is_network_error(error: Exception) -> bool:
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _NETWORK_MARKERS)


def classify_error(error: Exception) -> str:
    """Return "permanent" or "transient".

    400/401/403/404 and PermanentError abort at once. Network errors,
    429/500/503/504 and anything unrecognised are retried.
    """
    if isinstance(error, PermanentError):
        return "permanent"
    if error_status(error) in PERMANENT_STATUS:
        return "permanent"
    return "transient"


def retry_with_backoff(
    fn,
    attempts: int = TTS_RETRY_COUNT,
    base_delay: float = TTS_RETRY_BASE_DELAY,
    sleep=time.sleep,
    label: str = "",
):
    """Call fn() with exponential backoff: base, 2*base, 4*base, ...

    Permanent errors are re-raised immediately without using up attempts.
    The last transient error is re-raised once attempts are exhausted.
    """
    last_error = None
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as e:
            if classify_error(e) == "permanent":
                raise
            last_error = e

            if attempt < attempts - 1:
                delay = base_delay * (2 ** attempt)
                status = error_status(e)
                if status in RETRYABLE_STATUS or is_network_error(e):
                    reason = f"HTTP {status}" if status else "network"
                else:
                    reason = "unclassified"
                logger.warning(
                    "%sRetry %d/%d after %.1fs (%s: %s)",
                    f"{label} " if label else "", attempt + 1, attempts, delay, reason, e,
                )
                sleep(delay)

    raise last_error


# --- Engines ---

class SynthesisEngine(ABC):
    """Interface for multi-speaker TTS services.

    synthesize() returns raw mono 16-bit little-endian PCM at SAMPLE_RATE.
    """

    name = ""
    default_voices: dict[str, str] = {}

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        pass

    @abstractmethod
    def synthesize(self, text: str, voices: dict[str, str]) -> bytes:
        pass


def resolve_api_key() -> str | None:
    return (
        os.getenv("GOOGLE_API_KEY")
        or os.getenv("GEMINI_API_KEY")
        or os.getenv("GCP_API_KEY")
    )


class GeminiEngine(SynthesisEngine):
    """Gemini multi-speaker TTS. One request renders the whole chunk."""

    name = "gemini"
    default_voices = GEMINI_VOICES

    def __init__(self, api_key: str | None = None, model: str | None = None, client=None):
        self.model = model or os.getenv("PODCAST_TTS_MODEL", TTS_MODEL)
        if client is None:
            api_key = api_key or resolve_api_key()
            if not api_key:
                raise PodcastError(
                    "No API key found for Gemini TTS. "
                    "Set GOOGLE_API_KEY, GEMINI_API_KEY, or GCP_API_KEY."
                )
            client = genai.Client(api_key=api_key)
        self.client = client

    def count_tokens(self, text: str) -> int:
        result = self.client.models.count_tokens(model=self.model, contents=text)
        return result.total_tokens

    def _speech_config(self, voices: dict[str, str]) -> types.SpeechConfig:
        return types.SpeechConfig(
            multi_speaker_voice_config=types.MultiSpeakerVoiceConfig(
                speaker_voice_configs=[
                    types.SpeakerVoiceConfig(
                        speaker=speaker,
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
                        ),
                    )
                    for speaker, voice in voices.items()
                ]
            )
        )

    def synthesize(self, text: str, voices: dict[str, str]) -> bytes:
        response = self.client.models.generate_content(
            model=self.model,
            contents=text,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=self._speech_config(voices),
            ),
        )

        try:
            inline = response.candidates[0].content.parts[0].inline_data
        except (AttributeError, IndexError, TypeError):
            inline = None
        if inline is None:
            raise MalformedResponseError("TTS API returned malformed response - missing inline_data")

        data = inline.data or b""
        if isinstance(data, str):
            data = base64.b64decode(data)
        return data


async def _edge_audio(text: str, voice: str, rate: str) -> bytes:
    communicate = edge_tts.Communicate(text, voice, rate=rate)
    data = bytearray()
    async for chunk in communicate.stream():
        if chunk["type"] == "audio":
            data.extend(chunk["data"])
    return bytes(data)


class EdgeEngine(SynthesisEngine):
    """edge-tts fallback: one request per speaker turn, decoded to PCM with pydub.

    There is no tokenizer, so token counts are estimated from length.
    """

    name = "edge"
    default_voices = EDGE_VOICES

    def __init__(self, rate: str = EDGE_RATE, gap_ms: int = EDGE_SPEAKER_GAP_MS):
        self.rate = rate
        self.gap_ms = gap_ms

    def count_tokens(self, text: str) -> int:
        return estimate_token_count(text)

    def _to_pcm_format(self, audio: AudioSegment) -> AudioSegment:
        return (
            audio.set_frame_rate(SAMPLE_RATE)
            .set_channels(CHANNELS)
            .set_sample_width(BITS_PER_SAMPLE // 8)
        )

    def synthesize(self, text: str, voices: dict[str, str]) -> bytes:
        script = parse_dialogue(text, tuple(voices))
        gap = self._to_pcm_format(AudioSegment.silent(duration=self.gap_ms, frame_rate=SAMPLE_RATE))
        combined = None

        for utt in script.utterances:
            mp3 = asyncio.run(_edge_audio(utt.text, voices[utt.speaker], self.rate))
            # 0-byte output counts as failure
            if not mp3:
                raise MalformedResponseError(f"TTS produced no audio for: {utt.text[:50]}...")
            audio = self._to_pcm_format(AudioSegment.from_file(io.BytesIO(mp3), format="mp3"))
            combined = audio if combined is None else combined + gap + audio

        return combined.raw_data if combined is not None else b""


ENGINES = {
    "gemini": GeminiEngine,
    "edge": EdgeEngine,
}


def create_engine(name: str = "gemini", **kwargs) -> SynthesisEngine:
    """Create a synthesis engine by name."""
    if name not in ENGINES:
        raise ValueError(f"Unknown TTS engine: {name} (available: {', '.join(ENGINES)})")
    return ENGINES[name](**kwargs)


# --- Orchestration ---

def synthesize_chunk(
    chunk: Chunk,
    engine: SynthesisEngine,
    voices: dict[str, str] | None = None,
    total: int = 1,
    attempts: int = TTS_RETRY_COUNT,
    base_delay: float = TTS_RETRY_BASE_DELAY,
    sleep=time.sleep,
) -> SynthesisResult:
    """Synthesize one chunk.

    Token preflight, then the synthesis call under retry. Oversized
    chunks and malformed or empty responses are permanent failures
    and never retried.
    """
    if voices is None:
        voices = engine.default_voices
    label = f"[chunk {chunk.index + 1}/{total}]"
    max_tokens = TOKEN_LIMIT - TOKEN_SAFETY_MARGIN

    token_count = retry_with_backoff(
        lambda: engine.count_tokens(chunk.text),
        attempts=attempts, base_delay=base_delay, sleep=sleep, label=label,
    )
    print(f"  Chunk {chunk.index + 1}/{total}: {token_count} tokens, ~{chunk.duration / 60:.1f} min")

    if token_count > max_tokens:
        raise ChunkTooLargeError(chunk.index, token_count, max_tokens)

    pcm = retry_with_backoff(
        lambda: engine.synthesize(chunk.text, voices),
        attempts=attempts, base_delay=base_delay, sleep=sleep, label=label,
    )

    # Request succeeded but violated the contract: not retried
    if not pcm:
        raise EmptyAudioError(f"TTS returned no audio data for chunk {chunk.index + 1}")

    print(f"  Chunk {chunk.index + 1}/{total} complete: {len(pcm) / 1024 / 1024:.2f} MB")
    return SynthesisResult(index=chunk.index, pcm=pcm, token_count=token_count)


def synthesize_chunks(
    chunks: list[Chunk],
    engine: SynthesisEngine,
    voices: dict[str, str] | None = None,
    workers: int = DEFAULT_WORKERS,
    **retry_kwargs,
) -> list[SynthesisResult]:
    """Synthesize every chunk, returning results in chunk order.

    With workers > 1 chunks run on a bounded thread pool. The first
    unrecoverable failure cancels pending chunks and propagates; partial
    results are discarded.
    """
    total = len(chunks)

    if workers <= 1 or total <= 1:
        return [
            synthesize_chunk(chunk, engine, voices, total=total, **retry_kwargs)
            for chunk in chunks
        ]

    results: dict[int, SynthesisResult] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(synthesize_chunk, chunk, engine, voices, total, **retry_kwargs)
            for chunk in chunks
        ]
        try:
            for future in as_completed(futures):
                result = future.result()
                results[result.index] = result
        except Exception:
            pool.shutdown(wait=False, cancel_futures=True)
            raise

    return [results[chunk.index] for chunk in chunks]
