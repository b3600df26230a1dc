"""CLI interface with subcommand routing and batch orchestration."""

import argparse
import logging
import os
import shutil
import sys
from concurrent.futures import ThreadPoolExecutor

from podcast_producer.artifacts import (
    ManifestStore,
    filter_files,
    find_lessons,
    find_scripts,
    manifest_path,
    script_path_for,
)
from podcast_producer.chunker import chunk_dialogue
from podcast_producer.constants import (
    AUDIO_OUTPUT_DIR,
    DEFAULT_WORKERS,
    DOCS_DIR,
    SCRIPT_JOBS,
    SCRIPT_OUTPUT_DIR,
    VERSION,
)
from podcast_producer.dedup import deduplicate
from podcast_producer.errors import PodcastError
from podcast_producer.models import Condense, Remove
from podcast_producer.parser import parse_lesson, read_script_file
from podcast_producer.pipeline import generate_audio, generate_script, script_is_current
from podcast_producer.script import GeminiScriptRenderer
from podcast_producer.tts import ENGINES, create_engine

logger = logging.getLogger(__name__)


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required but not found.", file=sys.stderr)
        print("Install with: brew install ffmpeg", file=sys.stderr)
        raise SystemExit(1)


def _select_lessons(args) -> list[str]:
    lessons = filter_files(find_lessons(args.docs_dir), args.docs_dir, args.file, args.module)
    if not lessons:
        print(f"Error: No lessons matched in {args.docs_dir}", file=sys.stderr)
        raise SystemExit(1)
    return lessons


def _select_scripts(args) -> list[str]:
    file = None
    if args.file:
        # --file names the lesson; its script always has a .md extension
        file = os.path.splitext(args.file)[0] + ".md"
    scripts = filter_files(find_scripts(args.scripts_dir), args.scripts_dir, file, args.module)
    if not scripts:
        print(f"Error: No scripts matched in {args.scripts_dir}", file=sys.stderr)
        print("Run 'podcast-producer script ...' first.", file=sys.stderr)
        raise SystemExit(1)
    return scripts


def _make_renderer():
    try:
        return GeminiScriptRenderer()
    except PodcastError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)


def _make_engine(name: str, mp3: bool = False):
    # edge decodes MP3 and --mp3 encodes it, both through ffmpeg
    if name != "gemini" or mp3:
        _check_ffmpeg()
    try:
        return create_engine(name)
    except PodcastError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)


def _report(done: int, failed: list[str], skipped: int = 0) -> None:
    summary = f"\nDone: {done} succeeded, "
    if skipped:
        summary += f"{skipped} skipped, "
    print(summary + f"{len(failed)} failed")
    if failed:
        for path in failed:
            print(f"  failed: {path}", file=sys.stderr)
        raise SystemExit(1)


def _script_one(lesson, args, renderer, script_store) -> str | None:
    """Render one lesson's script. Returns None when an existing script was kept."""
    source = os.path.relpath(lesson, args.docs_dir).replace(os.sep, "/")
    script_path = script_path_for(lesson, args.docs_dir, args.scripts_dir)
    if not args.force and script_is_current(script_path, source, script_store):
        print(f"\nSkipping script: {source} (already generated, use --force to regenerate)")
        return None

    print(f"\nGenerating script: {source}")
    return generate_script(
        lesson,
        script_path,
        renderer,
        source=source,
        script_store=script_store,
        debug=args.debug,
    )


def _audio_one(script_path, args, engine, store):
    print(f"\nGenerating audio: {os.path.relpath(script_path, args.scripts_dir)}")
    return generate_audio(
        script_path,
        engine,
        store,
        scripts_dir=args.scripts_dir,
        audio_dir=args.audio_dir,
        workers=args.workers,
        mp3=args.mp3,
    )


def _run_one(item: str, step) -> str:
    try:
        return "skipped" if step(item) is None else "done"
    except Exception as e:
        logger.debug("Failure for %s", item, exc_info=True)
        print(f"  Error: {e}", file=sys.stderr)
        return "failed"


def _run_batch(items: list[str], step, jobs: int = 1) -> tuple[int, int, list[str]]:
    """Run step on each item; a failing item is reported and the batch continues.

    A step returning None counts as skipped. With jobs > 1 up to that many
    items run at once on a thread pool.
    """
    if jobs > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            outcomes = list(pool.map(lambda item: _run_one(item, step), items))
    else:
        outcomes = [_run_one(item, step) for item in items]
    failed = [item for item, outcome in zip(items, outcomes) if outcome == "failed"]
    return outcomes.count("done"), outcomes.count("skipped"), failed


def cmd_script(args):
    """Generate dialogue scripts from lessons."""
    lessons = _select_lessons(args)
    renderer = _make_renderer()
    script_store = ManifestStore(manifest_path(args.scripts_dir))
    script_store.load()

    print(f"Generating {len(lessons)} script(s) with {renderer.model} ({args.jobs} at a time)")
    try:
        done, skipped, failed = _run_batch(
            lessons, lambda lesson: _script_one(lesson, args, renderer, script_store), jobs=args.jobs
        )
    finally:
        script_store.save()
    _report(done, failed, skipped)


def cmd_audio(args):
    """Synthesize audio for existing scripts."""
    scripts = _select_scripts(args)
    engine = _make_engine(args.engine, args.mp3)
    store = ManifestStore(manifest_path(args.audio_dir))
    store.load()

    print(f"Synthesizing {len(scripts)} script(s) with {engine.name} ({args.workers} worker(s))")
    try:
        done, _skipped, failed = _run_batch(scripts, lambda path: _audio_one(path, args, engine, store))
    finally:
        saved = store.save()
    if saved:
        print(f"Manifest updated: {saved} ({len(store.touched)} entr{'ies' if len(store.touched) != 1 else 'y'})")
    _report(done, failed)


def cmd_run(args):
    """Script then audio for each selected lesson."""
    lessons = _select_lessons(args)
    renderer = _make_renderer()
    engine = _make_engine(args.engine, args.mp3)
    script_store = ManifestStore(manifest_path(args.scripts_dir))
    script_store.load()
    store = ManifestStore(manifest_path(args.audio_dir))
    store.load()

    def step(lesson):
        script_path = _script_one(lesson, args, renderer, script_store)
        if script_path is None:
            script_path = script_path_for(lesson, args.docs_dir, args.scripts_dir)
        return _audio_one(script_path, args, engine, store)

    try:
        done, _skipped, failed = _run_batch(lessons, step)
    finally:
        script_store.save()
        store.save()
    _report(done, failed)


def cmd_dedup(args):
    """Print deduplication decisions without calling any service."""
    for lesson in _select_lessons(args):
        with open(lesson, encoding="utf-8") as f:
            document = parse_lesson(f.read(), source=lesson)
        result = deduplicate(document)
        counts = result.counts()
        print(f"\n{os.path.relpath(lesson, args.docs_dir)}: "
              f"{counts['remove']} remove, {counts['condense']} condense, {counts['keep']} keep")

        notes = {b.position: b for b in document.side_notes()}
        for decision in result.decisions:
            note = notes[decision.position]
            label = note.title or note.note_type
            action = type(decision).__name__.lower()
            print(f"  [{decision.position:>3}] {action:<8} {decision.score:.2f}  {note.note_type}: {label}")
            if isinstance(decision, Condense):
                print(f"        → {decision.unique_text[:100]}")
            elif not isinstance(decision, Remove) and args.verbose:
                print(f"        {note.text[:100]}")

        print(f"  {document.char_count()} → {result.document.char_count()} chars")


def cmd_chunks(args):
    """Print the chunk plan for each selected script."""
    for script_path in _select_scripts(args):
        try:
            _frontmatter, script = read_script_file(script_path)
        except PodcastError as e:
            print(f"Error: {e}", file=sys.stderr)
            continue
        chunks = chunk_dialogue(script)
        total = sum(c.duration for c in chunks)
        print(f"\n{os.path.relpath(script_path, args.scripts_dir)}: "
              f"{len(chunks)} chunk(s), ~{total / 60:.1f} min")
        for chunk in chunks:
            first, last = chunk.utterances[0].speaker, chunk.utterances[-1].speaker
            print(f"  Chunk {chunk.index + 1}: {len(chunk.utterances)} utterances, "
                  f"~{chunk.duration / 60:.1f} min ({first} → {last})")


def cmd_voices(args):
    """List the voice assigned to each speaker per engine."""
    names = [args.engine] if args.engine else list(ENGINES)
    for name in names:
        print(f"{name}:")
        for speaker, voice in ENGINES[name].default_voices.items():
            print(f"  {speaker}: {voice}")


def _add_selection(parser):
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--file", help="Single lesson, relative to the docs directory")
    group.add_argument("--module", help="All lessons under a directory of the docs directory")
    group.add_argument("--all", action="store_true", help="Every lesson")


def _add_dirs(parser):
    parser.add_argument("--docs-dir", default=DOCS_DIR, help=f"Lesson directory (default: {DOCS_DIR})")
    parser.add_argument("--scripts-dir", default=SCRIPT_OUTPUT_DIR, help=f"Script directory (default: {SCRIPT_OUTPUT_DIR})")
    parser.add_argument("--audio-dir", default=AUDIO_OUTPUT_DIR, help=f"Audio directory (default: {AUDIO_OUTPUT_DIR})")


def _add_synthesis(parser):
    parser.add_argument("--engine", choices=sorted(ENGINES), default="gemini", help="TTS engine")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS, help="Chunks synthesized in parallel")
    parser.add_argument("--mp3", action="store_true", help="Write MP3 instead of WAV")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podcast-producer",
        description="Podcast Producer: turn course lessons into two-speaker podcast audio",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # script
    script_parser = subparsers.add_parser("script", help="Generate dialogue scripts from lessons")
    _add_selection(script_parser)
    _add_dirs(script_parser)
    script_parser.add_argument("--debug", action="store_true", help="Save the rendered prompt next to each script")
    script_parser.add_argument("-f", "--force", action="store_true", help="Regenerate scripts that already exist")
    script_parser.add_argument("--jobs", type=int, default=SCRIPT_JOBS, help=f"Lessons rendered at once (default: {SCRIPT_JOBS})")
    script_parser.set_defaults(func=cmd_script)

    # audio
    audio_parser = subparsers.add_parser("audio", help="Synthesize audio from scripts")
    _add_selection(audio_parser)
    _add_dirs(audio_parser)
    _add_synthesis(audio_parser)
    audio_parser.set_defaults(func=cmd_audio)

    # run
    run_parser = subparsers.add_parser("run", help="Generate scripts and audio")
    _add_selection(run_parser)
    _add_dirs(run_parser)
    _add_synthesis(run_parser)
    run_parser.add_argument("--debug", action="store_true", help="Save the rendered prompt next to each script")
    run_parser.add_argument("-f", "--force", action="store_true", help="Regenerate scripts that already exist")
    run_parser.set_defaults(func=cmd_run)

    # dedup
    dedup_parser = subparsers.add_parser("dedup", help="Show side-note deduplication decisions")
    _add_selection(dedup_parser)
    _add_dirs(dedup_parser)
    dedup_parser.set_defaults(func=cmd_dedup)

    # chunks
    chunks_parser = subparsers.add_parser("chunks", help="Show how scripts will be chunked")
    _add_selection(chunks_parser)
    _add_dirs(chunks_parser)
    chunks_parser.set_defaults(func=cmd_chunks)

    # voices
    voices_parser = subparsers.add_parser("voices", help="List speaker voices per engine")
    voices_parser.add_argument("--engine", choices=sorted(ENGINES), help="Only this engine")
    voices_parser.set_defaults(func=cmd_voices)

    return parser


def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
