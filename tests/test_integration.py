"""Integration tests (Layer 5): full pipeline verification."""

import io
import json
import os
import wave
from unittest.mock import MagicMock, patch

from pydub import AudioSegment

from podcast_producer.cli import main
from podcast_producer.models import DialogueScript, Utterance
from podcast_producer.parser import write_script_file
from podcast_producer.script import StaticRenderer
from podcast_producer.tts import EdgeEngine, GeminiEngine


LESSON = """---
title: Retries
---

# Retries

Retries with exponential backoff protect services from cascading failures. Each attempt
waits twice as long as the previous one, so a struggling dependency gets room to recover.

:::tip[Backoff]
Retries with exponential backoff protect services from cascading failures.
:::

:::info[Budgets]
Billing dashboards expose per-request costs, making budget regressions visible within hours.
:::
"""

RESPONSE = """<podcast_dialog>
Alex: Today we look at retries with backoff.

Sam: And why the delay doubles each time?

Alex: Right. A struggling dependency needs room to recover.
</podcast_dialog>"""


def _mock_tts_communicate():
    """Create a mock edge_tts.Communicate factory streaming a tiny MP3."""
    buffer = io.BytesIO()
    AudioSegment.silent(duration=100).export(buffer, format="mp3")
    data = buffer.getvalue()

    def factory(text, voice, **kwargs):
        mock = MagicMock()

        async def stream():
            yield {"type": "audio", "data": data}
        mock.stream = stream
        return mock
    return factory


def _write_lesson(docs_dir, relative, content=LESSON):
    path = os.path.join(docs_dir, relative)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)


def _dirs(tmp_path):
    return [
        "--docs-dir", str(tmp_path / "docs"),
        "--scripts-dir", str(tmp_path / "scripts"),
        "--audio-dir", str(tmp_path / "audio"),
    ]


def _load_manifest(tmp_path):
    with open(tmp_path / "audio" / "manifest.json") as f:
        return json.load(f)


@patch("podcast_producer.cli.create_engine", side_effect=lambda name: EdgeEngine())
@patch("podcast_producer.cli.GeminiScriptRenderer", side_effect=lambda: StaticRenderer(RESPONSE))
@patch("podcast_producer.tts.edge_tts.Communicate")
@patch("shutil.which", return_value="/usr/bin/ffmpeg")
def test_run_lesson_to_wav(mock_which, mock_comm, mock_renderer, mock_engine, tmp_path):
    """Lesson → script → WAV with a manifest entry the site can read."""
    mock_comm.side_effect = _mock_tts_communicate()
    _write_lesson(str(tmp_path / "docs"), "lesson-1/retries.md")

    main(["run", "--all", "--engine", "edge"] + _dirs(tmp_path))

    script_path = tmp_path / "scripts" / "lesson-1" / "retries.md"
    assert script_path.read_text().startswith("---\nsource: lesson-1/retries.md\n")

    wav_path = tmp_path / "audio" / "lesson-1" / "retries.wav"
    with wave.open(str(wav_path)) as reader:
        assert reader.getframerate() == 24000
        assert reader.getnchannels() == 1
        assert reader.getnframes() > 0

    entry = _load_manifest(tmp_path)["lesson-1/retries.md"]
    assert entry["audioUrl"] == "/audio/lesson-1/retries.wav"
    assert entry["format"] == "audio/wav"
    assert entry["size"] == wav_path.stat().st_size
    assert entry["chunks"] == 1
    assert entry["scriptSource"] == "lesson-1/retries.md"
    # One edge-tts request per utterance
    assert mock_comm.call_count == 3


@patch("podcast_producer.cli.create_engine", side_effect=lambda name: EdgeEngine())
@patch("podcast_producer.cli.GeminiScriptRenderer", side_effect=lambda: StaticRenderer(RESPONSE))
@patch("podcast_producer.tts.edge_tts.Communicate")
@patch("shutil.which", return_value="/usr/bin/ffmpeg")
def test_run_mp3(mock_which, mock_comm, mock_renderer, mock_engine, tmp_path):
    mock_comm.side_effect = _mock_tts_communicate()
    _write_lesson(str(tmp_path / "docs"), "intro.md")

    main(["run", "--file", "intro.md", "--engine", "edge", "--mp3"] + _dirs(tmp_path))

    assert sorted(os.listdir(tmp_path / "audio")) == ["intro.mp3", "manifest.json"]
    entry = _load_manifest(tmp_path)["intro.md"]
    assert entry["audioUrl"] == "/audio/intro.mp3"
    assert entry["format"] == "audio/mpeg"


@patch("podcast_producer.cli.create_engine", side_effect=lambda name: EdgeEngine())
@patch("podcast_producer.cli.GeminiScriptRenderer", side_effect=lambda: StaticRenderer(RESPONSE))
@patch("podcast_producer.tts.edge_tts.Communicate")
@patch("shutil.which", return_value="/usr/bin/ffmpeg")
def test_separate_runs_share_manifest(mock_which, mock_comm, mock_renderer, mock_engine, tmp_path):
    """A later run for another lesson keeps earlier entries."""
    mock_comm.side_effect = _mock_tts_communicate()
    docs = str(tmp_path / "docs")
    _write_lesson(docs, "lesson-1/retries.md")
    _write_lesson(docs, "lesson-2/budgets.md")

    main(["run", "--module", "lesson-1", "--engine", "edge"] + _dirs(tmp_path))
    main(["run", "--module", "lesson-2", "--engine", "edge"] + _dirs(tmp_path))

    assert set(_load_manifest(tmp_path)) == {"lesson-1/retries.md", "lesson-2/budgets.md"}


def test_long_script_parallel_chunks(tmp_path):
    """A ~10 minute script is split, synthesized on two workers, and stitched together."""
    text = "x" * 187  # ~15 seconds each
    script = DialogueScript(utterances=[
        Utterance("Alex" if i % 2 == 0 else "Sam", text) for i in range(40)
    ])
    write_script_file(
        str(tmp_path / "scripts" / "long.md"), script, source="long.md", model="static"
    )

    client = MagicMock()
    client.models.count_tokens.return_value.total_tokens = 1000

    def generate_content(model, contents, config):
        response = MagicMock()
        response.candidates[0].content.parts[0].inline_data.data = b"\x01\x00" * 2400
        return response
    client.models.generate_content.side_effect = generate_content

    with patch("podcast_producer.cli.create_engine", return_value=GeminiEngine(client=client)):
        main(["audio", "--all", "--workers", "2"] + _dirs(tmp_path))

    entry = _load_manifest(tmp_path)["long.md"]
    assert entry["chunks"] == 2
    assert entry["tokenCount"] == 2000
    assert entry["durationSeconds"] == 0.2
    assert client.models.generate_content.call_count == 2


@patch("podcast_producer.cli.create_engine", side_effect=lambda name: EdgeEngine())
@patch("podcast_producer.tts.edge_tts.Communicate")
@patch("shutil.which", return_value="/usr/bin/ffmpeg")
def test_rerun_reuses_script(mock_which, mock_comm, mock_engine, tmp_path):
    """A second run keeps the existing script and still synthesizes audio."""
    mock_comm.side_effect = _mock_tts_communicate()
    _write_lesson(str(tmp_path / "docs"), "intro.md")
    renderer = StaticRenderer(RESPONSE)

    with patch("podcast_producer.cli.GeminiScriptRenderer", return_value=renderer):
        main(["run", "--all", "--engine", "edge"] + _dirs(tmp_path))
        os.remove(tmp_path / "audio" / "intro.wav")
        main(["run", "--all", "--engine", "edge"] + _dirs(tmp_path))

    assert len(renderer.prompts) == 1
    assert (tmp_path / "audio" / "intro.wav").exists()
