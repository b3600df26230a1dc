"""Output paths, file discovery, JSON artifacts, and the audio manifest."""

import json
import logging
import os
import re

from podcast_producer.constants import (
    AUDIO_URL_PREFIX,
    MANIFEST_NAME,
)

logger = logging.getLogger(__name__)

_LESSON_RE = re.compile(r"\.(md|mdx)$", re.IGNORECASE)


def slug_from_path(path: str) -> str:
    """Convert a filename to a slug.

    "Prompting 101.mdx" → "prompting_101"
    "/path/to/intro.md" → "intro"
    """
    basename = os.path.splitext(os.path.basename(path))[0]
    return re.sub(r"[^a-zA-Z0-9]+", "_", basename).strip("_").lower()


def write_artifact(directory: str, filename: str, data: dict) -> str:
    """Write JSON artifact to directory/filename.

    Written to a temp file and renamed, so readers never see half a file.
    Returns path to the written file.
    """
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
    os.replace(tmp_path, path)
    return path


def load_artifact(directory: str, filename: str) -> dict | None:
    """Read JSON artifact. Returns None if file doesn't exist."""
    path = os.path.join(directory, filename)
    if not os.path.exists(path):
        return None
    with open(path) as f:
        return json.load(f)


def _walk_sorted(directory: str, match) -> list[str]:
    if not os.path.isdir(directory):
        return []
    files = []
    for root, _dirs, names in os.walk(directory):
        for name in names:
            if match(name):
                files.append(os.path.join(root, name))
    return sorted(files)


def find_lessons(docs_dir: str) -> list[str]:
    """All .md/.mdx lessons under docs_dir, skipping CLAUDE.md files."""
    return _walk_sorted(
        docs_dir, lambda name: bool(_LESSON_RE.search(name)) and "CLAUDE.md" not in name
    )


def find_scripts(scripts_dir: str) -> list[str]:
    return _walk_sorted(scripts_dir, lambda name: name.lower().endswith(".md"))


def filter_files(
    files: list[str],
    base_dir: str,
    file: str | None = None,
    module: str | None = None,
) -> list[str]:
    """Select a single file or all files under a module directory."""
    if file:
        target = os.path.normpath(os.path.join(base_dir, file))
        return [f for f in files if os.path.normpath(f) == target]
    if module:
        prefix = os.path.normpath(os.path.join(base_dir, module)) + os.sep
        return [f for f in files if os.path.normpath(f).startswith(prefix)]
    return files


def script_path_for(lesson_path: str, docs_dir: str, scripts_dir: str) -> str:
    """Lesson docs/<dir>/<name>.mdx → scripts/<dir>/<name>.md"""
    relative = os.path.relpath(lesson_path, docs_dir)
    name = os.path.splitext(os.path.basename(relative))[0] + ".md"
    return os.path.join(scripts_dir, os.path.dirname(relative), name)


def audio_path_for(script_path: str, scripts_dir: str, audio_dir: str, ext: str = "wav") -> str:
    """Script scripts/<dir>/<name>.md → audio/<dir>/<name>.<ext>"""
    relative = os.path.relpath(script_path, scripts_dir)
    name = os.path.splitext(os.path.basename(relative))[0] + f".{ext}"
    return os.path.join(audio_dir, os.path.dirname(relative), name)


def audio_url_for(audio_path: str, audio_dir: str) -> str:
    relative = os.path.relpath(audio_path, audio_dir).replace(os.sep, "/")
    return f"{AUDIO_URL_PREFIX}/{relative}"


class ManifestStore:
    """Document → artifact metadata, merged back by touched keys only.

    load() takes a snapshot at the start of a run. save() re-reads the file
    on disk and writes back only the keys updated in this run, so runs over
    disjoint document sets don't clobber each other.
    """

    def __init__(self, path: str):
        self.path = path
        self.entries: dict = {}
        self._touched: dict = {}

    def _read(self) -> dict:
        directory, filename = os.path.split(self.path)
        try:
            return load_artifact(directory or ".", filename) or {}
        except json.JSONDecodeError:
            logger.warning("Malformed manifest %s, starting empty", self.path)
            return {}

    def load(self) -> dict:
        self.entries = self._read()
        return self.entries

    def get(self, key: str) -> dict | None:
        return self._touched.get(key, self.entries.get(key))

    def update(self, key: str, entry: dict) -> None:
        self._touched[key] = entry
        self.entries[key] = entry

    @property
    def touched(self) -> list[str]:
        return list(self._touched)

    def save(self) -> str | None:
        """Merge touched keys into the on-disk manifest. No-op if nothing changed."""
        if not self._touched:
            return None
        current = self._read()
        current.update(self._touched)
        directory, filename = os.path.split(self.path)
        path = write_artifact(directory or ".", filename, current)
        self.entries = current
        return path


def manifest_path(audio_dir: str) -> str:
    return os.path.join(audio_dir, MANIFEST_NAME)
