"""Lesson → script → audio pipeline steps."""

import logging
import os
from datetime import datetime, timezone

from podcast_producer.artifacts import (
    ManifestStore,
    audio_path_for,
    audio_url_for,
)
from podcast_producer.assembly import assemble
from podcast_producer.chunker import chunk_dialogue, estimate_duration
from podcast_producer.constants import DEFAULT_WORKERS, MIN_CONTENT_CHARS, SPEAKERS
from podcast_producer.dedup import DedupThresholds, deduplicate
from podcast_producer.errors import InputError
from podcast_producer.exporter import export, manifest_entry
from podcast_producer.models import AudioArtifact, DialogueScript
from podcast_producer.parser import parse_lesson, read_script_file, write_script_file
from podcast_producer.script import (
    ScriptRenderer,
    build_dialog_prompt,
    render_script,
    validate_dialog_quality,
)
from podcast_producer.tts import SynthesisEngine, synthesize_chunks

logger = logging.getLogger(__name__)


def voices_for(script: DialogueScript, engine: SynthesisEngine) -> dict[str, str]:
    """Bind each declared speaker to one of the engine's voice profiles."""
    defaults = engine.default_voices
    if all(s in defaults for s in script.speakers):
        return {s: defaults[s] for s in script.speakers}
    return dict(zip(script.speakers, defaults.values()))


def script_is_current(script_path: str, source: str, script_store: ManifestStore) -> bool:
    """True when the manifest records a non-empty script that still exists on disk."""
    entry = script_store.get(source) or {}
    return bool(entry.get("tokenCount") and entry.get("size") and os.path.exists(script_path))


def generate_script(
    lesson_path: str,
    script_path: str,
    renderer: ScriptRenderer,
    source: str,
    thresholds: DedupThresholds | None = None,
    speakers: tuple[str, ...] = SPEAKERS,
    script_store: ManifestStore | None = None,
    debug: bool = False,
) -> str:
    """Parse, deduplicate, render, and save one lesson's script.

    Raises InputError for lessons too short to discuss.
    """
    with open(lesson_path, encoding="utf-8") as f:
        text = f.read()

    document = parse_lesson(text, source=source)
    if document.char_count() < MIN_CONTENT_CHARS:
        raise InputError(
            f"Content too short ({document.char_count()} chars, need {MIN_CONTENT_CHARS}): {source}"
        )

    result = deduplicate(document, thresholds)
    counts = result.counts()
    print(
        f"  Side notes: {counts['remove']} removed, {counts['condense']} condensed, "
        f"{counts['keep']} kept ({document.char_count()} → {result.document.char_count()} chars)"
    )

    if debug:
        debug_path = os.path.splitext(script_path)[0] + ".debug-prompt.txt"
        os.makedirs(os.path.dirname(debug_path) or ".", exist_ok=True)
        with open(debug_path, "w", encoding="utf-8") as f:
            f.write(build_dialog_prompt(result.document.to_prompt_text(), result.document.title, speakers))
        print(f"  Debug prompt saved: {debug_path}")

    # Delete stale output so a failed render never leaves an old script behind
    if os.path.exists(script_path):
        os.remove(script_path)

    script = render_script(result.document, renderer, speakers)
    print(f"  Extracted dialog ({len(script.utterances)} turns)")

    warnings = validate_dialog_quality(script)
    if warnings:
        print("  Quality warnings detected:")
        for w in warnings:
            print(f"     - {w}")
    else:
        logger.debug("Quality validation passed for %s", source)

    info = write_script_file(script_path, script, source=source, model=renderer.model)
    print(f"  Saved: {script_path} ({info['tokenCount']} tokens, {info['size'] / 1024:.2f} KB)")

    if script_store is not None:
        script_store.update(source, {
            "scriptPath": os.path.relpath(script_path, os.path.dirname(script_store.path)),
            "size": info["size"],
            "tokenCount": info["tokenCount"],
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        })

    return script_path


def generate_audio(
    script_path: str,
    engine: SynthesisEngine,
    store: ManifestStore,
    scripts_dir: str,
    audio_dir: str,
    workers: int = DEFAULT_WORKERS,
    mp3: bool = False,
    **retry_kwargs,
) -> AudioArtifact:
    """Synthesize a saved script into one audio file and record it.

    All-or-nothing: any chunk failure propagates before anything is
    written or recorded.
    """
    frontmatter, script = read_script_file(script_path)
    source = frontmatter.get("source") or os.path.relpath(script_path, scripts_dir)

    total = sum(estimate_duration(u.text) for u in script.utterances)
    print(f"  Source doc: {source}")
    print(f"  Total estimated duration: ~{total / 60:.1f} minutes")

    chunks = chunk_dialogue(script)
    if len(chunks) > 1:
        print(f"  Split into {len(chunks)} chunks for processing")

    results = synthesize_chunks(
        chunks, engine, voices_for(script, engine), workers=workers, **retry_kwargs
    )
    wav = assemble(results)
    token_count = sum(r.token_count for r in results)

    artifact = export(
        wav,
        audio_path_for(script_path, scripts_dir, audio_dir),
        token_count=token_count,
        chunk_count=len(chunks),
        mp3=mp3,
    )

    store.update(source, manifest_entry(
        artifact,
        audio_url=audio_url_for(artifact.path, audio_dir),
        script_source=os.path.relpath(script_path, scripts_dir).replace(os.sep, "/"),
    ))
    print(
        f"  Audio saved: {artifact.path} ({artifact.size / 1024 / 1024:.2f} MB, "
        f"{token_count} tokens, {len(chunks)} chunk{'s' if len(chunks) != 1 else ''})"
    )
    return artifact
