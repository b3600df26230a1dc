"""Write the assembled WAV (optionally as MP3) and build its manifest entry."""

import io
import os
from datetime import datetime, timezone

from pydub import AudioSegment

from podcast_producer.assembly import parse_wav_header, pcm_duration_seconds
from podcast_producer.constants import OUTPUT_BITRATE
from podcast_producer.models import AudioArtifact


def _write_atomic(path: str, data: bytes) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = path + ".part"
    with open(tmp_path, "wb") as f:
        f.write(data)
    os.replace(tmp_path, path)


def export(
    wav: bytes,
    output_path: str,
    token_count: int,
    chunk_count: int,
    mp3: bool = False,
) -> AudioArtifact:
    """Write the final artifact in one step.

    With mp3=True the WAV is transcoded through pydub and only the MP3
    (same path, .mp3 extension) is written.
    """
    header = parse_wav_header(wav)
    duration = round(pcm_duration_seconds(header["data_size"]), 1)

    if mp3:
        output_path = os.path.splitext(output_path)[0] + ".mp3"
        audio = AudioSegment.from_wav(io.BytesIO(wav))
        buffer = io.BytesIO()
        audio.export(buffer, format="mp3", bitrate=OUTPUT_BITRATE)
        data = buffer.getvalue()
        fmt = "audio/mpeg"
    else:
        data = wav
        fmt = "audio/wav"

    _write_atomic(output_path, data)

    return AudioArtifact(
        path=output_path,
        size=len(data),
        format=fmt,
        token_count=token_count,
        chunk_count=chunk_count,
        duration_seconds=duration,
    )


def manifest_entry(artifact: AudioArtifact, audio_url: str, script_source: str) -> dict:
    """Manifest record in the shape the site's audio player reads."""
    return {
        "audioUrl": audio_url,
        "size": artifact.size,
        "format": artifact.format,
        "tokenCount": artifact.token_count,
        "chunks": artifact.chunk_count,
        "durationSeconds": artifact.duration_seconds,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "scriptSource": script_source,
    }
