"""Assemble per-chunk PCM into a single WAV container."""

import struct

from podcast_producer.constants import (
    BITS_PER_SAMPLE,
    CHANNELS,
    SAMPLE_RATE,
    WAV_HEADER_SIZE,
)
from podcast_producer.errors import AssemblyError
from podcast_producer.models import SynthesisResult

# RIFF/WAVE, PCM fmt sub-chunk, data sub-chunk; all little-endian
_HEADER_FORMAT = "<4sI4s4sIHHIIHH4sI"
_PCM_FORMAT_TAG = 1
_FMT_CHUNK_SIZE = 16


def wav_header(
    data_length: int,
    sample_rate: int = SAMPLE_RATE,
    channels: int = CHANNELS,
    bits_per_sample: int = BITS_PER_SAMPLE,
) -> bytes:
    """Build the 44-byte header for a PCM payload of data_length bytes."""
    block_align = channels * bits_per_sample // 8
    byte_rate = sample_rate * block_align
    return struct.pack(
        _HEADER_FORMAT,
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        _FMT_CHUNK_SIZE,
        _PCM_FORMAT_TAG,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_length,
    )


def parse_wav_header(data: bytes) -> dict:
    """Decode the fields of a 44-byte PCM WAV header."""
    if len(data) < WAV_HEADER_SIZE:
        raise AssemblyError(f"WAV data shorter than header: {len(data)} bytes")
    (riff, riff_size, wave, fmt, fmt_size, format_tag, channels, sample_rate,
     byte_rate, block_align, bits, data_id, data_size) = struct.unpack(
        _HEADER_FORMAT, data[:WAV_HEADER_SIZE]
    )
    return {
        "riff": riff,
        "riff_size": riff_size,
        "wave": wave,
        "fmt": fmt,
        "fmt_size": fmt_size,
        "format_tag": format_tag,
        "channels": channels,
        "sample_rate": sample_rate,
        "byte_rate": byte_rate,
        "block_align": block_align,
        "bits_per_sample": bits,
        "data_id": data_id,
        "data_size": data_size,
    }


def _check_container(wav: bytes, payload_length: int) -> None:
    header = parse_wav_header(wav)
    if header["riff"] != b"RIFF" or header["wave"] != b"WAVE" or header["data_id"] != b"data":
        raise AssemblyError("WAV header has wrong chunk identifiers")
    if header["data_size"] != payload_length:
        raise AssemblyError(
            f"Header data size {header['data_size']} != payload length {payload_length}"
        )
    if header["riff_size"] != len(wav) - 8:
        raise AssemblyError(
            f"RIFF size {header['riff_size']} != file length - 8 ({len(wav) - 8})"
        )


def assemble(results: list[SynthesisResult]) -> bytes:
    """Concatenate chunk PCM in index order and prepend a WAV header."""
    if not results:
        raise AssemblyError("No synthesis results to assemble")

    ordered = sorted(results, key=lambda r: r.index)
    payload = b"".join(r.pcm for r in ordered)

    sample_bytes = CHANNELS * BITS_PER_SAMPLE // 8
    if len(payload) % sample_bytes:
        raise AssemblyError(f"Payload of {len(payload)} bytes is not whole {BITS_PER_SAMPLE}-bit samples")

    wav = wav_header(len(payload)) + payload
    _check_container(wav, len(payload))
    return wav


def pcm_duration_seconds(
    data_length: int,
    sample_rate: int = SAMPLE_RATE,
    channels: int = CHANNELS,
    bits_per_sample: int = BITS_PER_SAMPLE,
) -> float:
    return data_length / (sample_rate * channels * bits_per_sample // 8)
