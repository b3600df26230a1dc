"""Tests for artifacts module (Layer 2b)."""

import json
import logging
import os

from podcast_producer.artifacts import (
    ManifestStore,
    audio_path_for,
    audio_url_for,
    filter_files,
    find_lessons,
    find_scripts,
    load_artifact,
    manifest_path,
    script_path_for,
    slug_from_path,
    write_artifact,
)


def _touch(path, text="x"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(text)
    return path


# --- JSON artifacts ---

def test_slug_from_path():
    """Various filename formats → correct slugs."""
    assert slug_from_path("/path/to/Prompting 101.mdx") == "prompting_101"
    assert slug_from_path("intro.md") == "intro"
    assert slug_from_path("/a/b/Context-Engineering.md") == "context_engineering"


def test_write_artifact(tmp_path):
    """Writes valid JSON with a trailing newline, round-trips correctly."""
    data = {"key": "value", "num": 42}
    path = write_artifact(str(tmp_path / "out"), "test.json", data)
    with open(path) as f:
        content = f.read()
    assert content.endswith("}\n")
    assert json.loads(content) == data
    assert load_artifact(str(tmp_path / "out"), "test.json") == data


def test_write_artifact_no_temp_left(tmp_path):
    write_artifact(str(tmp_path), "test.json", {})
    assert os.listdir(tmp_path) == ["test.json"]


def test_load_artifact_missing(tmp_path):
    assert load_artifact(str(tmp_path), "nope.json") is None


# --- Discovery ---

def test_find_lessons(tmp_path):
    docs = str(tmp_path / "docs")
    _touch(os.path.join(docs, "intro.md"))
    _touch(os.path.join(docs, "lesson-1", "context.mdx"))
    _touch(os.path.join(docs, "lesson-1", "CLAUDE.md"))
    _touch(os.path.join(docs, "lesson-1", "diagram.png"))
    lessons = find_lessons(docs)
    assert lessons == [
        os.path.join(docs, "intro.md"),
        os.path.join(docs, "lesson-1", "context.mdx"),
    ]


def test_find_lessons_missing_dir(tmp_path):
    assert find_lessons(str(tmp_path / "missing")) == []


def test_find_scripts_ignores_manifest(tmp_path):
    scripts = str(tmp_path)
    _touch(os.path.join(scripts, "intro.md"))
    _touch(os.path.join(scripts, "manifest.json"))
    assert find_scripts(scripts) == [os.path.join(scripts, "intro.md")]


def test_filter_files(tmp_path):
    base = str(tmp_path)
    files = [
        os.path.join(base, "intro.md"),
        os.path.join(base, "lesson-1", "a.md"),
        os.path.join(base, "lesson-1", "b.md"),
        os.path.join(base, "lesson-10", "c.md"),
    ]
    assert filter_files(files, base, file="lesson-1/a.md") == [files[1]]
    assert filter_files(files, base, module="lesson-1") == files[1:3]
    assert filter_files(files, base) == files


# --- Path mapping ---

def test_script_path_for():
    assert script_path_for("docs/lesson-1/context.mdx", "docs", "scripts") == os.path.join(
        "scripts", "lesson-1", "context.md"
    )


def test_audio_path_for():
    assert audio_path_for("scripts/lesson-1/context.md", "scripts", "audio") == os.path.join(
        "audio", "lesson-1", "context.wav"
    )
    assert audio_path_for("scripts/intro.md", "scripts", "audio", ext="mp3") == os.path.join(
        "audio", "intro.mp3"
    )


def test_audio_url_for():
    assert audio_url_for(os.path.join("audio", "lesson-1", "context.wav"), "audio") == (
        "/audio/lesson-1/context.wav"
    )


# --- Manifest ---

def test_manifest_path():
    assert manifest_path("audio") == os.path.join("audio", "manifest.json")


def test_manifest_save_without_updates_is_noop(tmp_path):
    store = ManifestStore(str(tmp_path / "manifest.json"))
    store.load()
    assert store.save() is None
    assert not (tmp_path / "manifest.json").exists()


def test_manifest_update_and_save(tmp_path):
    path = str(tmp_path / "manifest.json")
    store = ManifestStore(path)
    assert store.load() == {}
    store.update("intro.md", {"audioUrl": "/audio/intro.wav"})
    assert store.get("intro.md") == {"audioUrl": "/audio/intro.wav"}
    assert store.touched == ["intro.md"]
    store.save()
    with open(path) as f:
        assert json.load(f) == {"intro.md": {"audioUrl": "/audio/intro.wav"}}


def test_manifest_merge_preserves_concurrent_writes(tmp_path):
    """Two runs over disjoint documents both land in the manifest."""
    path = str(tmp_path / "manifest.json")
    write_artifact(str(tmp_path), "manifest.json", {"old.md": {"size": 1}})

    first = ManifestStore(path)
    second = ManifestStore(path)
    first.load()
    second.load()

    first.update("a.md", {"size": 2})
    second.update("b.md", {"size": 3})
    first.save()
    second.save()

    assert load_artifact(str(tmp_path), "manifest.json") == {
        "old.md": {"size": 1},
        "a.md": {"size": 2},
        "b.md": {"size": 3},
    }


def test_manifest_overwrites_only_touched_key(tmp_path):
    path = str(tmp_path / "manifest.json")
    write_artifact(str(tmp_path), "manifest.json", {"a.md": {"size": 1}, "b.md": {"size": 1}})
    store = ManifestStore(path)
    store.load()
    store.update("a.md", {"size": 9})
    store.save()
    assert load_artifact(str(tmp_path), "manifest.json") == {"a.md": {"size": 9}, "b.md": {"size": 1}}


def test_manifest_malformed_starts_empty(tmp_path, caplog):
    path = tmp_path / "manifest.json"
    path.write_text("{not json")
    store = ManifestStore(str(path))
    with caplog.at_level(logging.WARNING, logger="podcast_producer.artifacts"):
        assert store.load() == {}
    assert "Malformed manifest" in caplog.text
