"""Parse lesson Markdown/MDX into Documents and dialogue text into scripts."""

import logging
import math
import os
import re
from datetime import datetime, timezone

import yaml

from podcast_producer.constants import (
    CHARS_PER_TOKEN,
    GEMINI_VOICES,
    NOTE_TYPES,
    SPEAKER_ROLES,
    SPEAKERS,
)
from podcast_producer.errors import ScriptError
from podcast_producer.models import Block, DialogueScript, Document, Utterance

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"^---\n(.*?)\n---\n", re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
_COMPONENT_RE = re.compile(r"<([A-Z][a-zA-Z]*)\s*/>")
_TAG_RE = re.compile(r"<[^>]+>")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_IMAGE_RE = re.compile(r"!\[.*?\]\(.*?\)")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_HEADING_RE = re.compile(r"^#{1,6}\s+")
_ADMONITION_START_RE = re.compile(
    rf"^:::({'|'.join(NOTE_TYPES)})\s*(?:\[([^\]]*)\])?\s*(.*)$", re.IGNORECASE
)
_ADMONITION_END_RE = re.compile(r"^:::\s*$")
_DIALOG_TAG_RE = re.compile(r"<podcast_dialog>(.*?)</podcast_dialog>", re.DOTALL)

_INEFFECTIVE_MARKERS = ("**ineffective:**", "**risky:**", "**bad:**", "**wrong:**")
_EFFECTIVE_MARKERS = ("**effective:**", "**better:**", "**good:**", "**correct:**")


# --- Code blocks ---

def summarize_code(code: str, language: str = "") -> str:
    """Short spoken summary of what a code snippet shows."""
    lines = [line for line in code.split("\n") if line.strip()]

    func = re.search(
        r"(?:^|\n)\s*(?:export\s+)?(?:async\s+)?(?:function\s+(\w+)|def\s+(\w+)"
        r"|(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s*)?\([^)]*\)\s*=>)",
        code,
    )
    if func:
        name = next(g for g in func.groups() if g)
        if len(name) >= 3 and name[0].isalpha():
            params = re.search(r"\(([^)]*)\)", code)
            param_str = params.group(1).strip() if params else ""
            count = len(param_str.split(",")) if param_str else 0
            summary = f"Function '{name}'"
            if count:
                summary += f" with {count} parameter{'s' if count > 1 else ''}"
            if "return" in code:
                summary += " that returns a value"
            return summary

    type_match = re.search(r"(?:interface|type)\s+(\w+)", code)
    if type_match:
        return f"Type definition '{type_match.group(1)}'"

    class_match = re.search(r"class\s+(\w+)", code)
    if class_match:
        return f"Class '{class_match.group(1)}'"

    if "import" in code or "require" in code:
        return "Import statements for dependencies"

    if code.strip().startswith("{") or "config" in code or "options" in code:
        return "Configuration object with properties"

    if language in ("bash", "sh", "shell") or "$" in code or "npm" in code or "git" in code:
        commands = len([line for line in lines if not line.lstrip().startswith("#")])
        return f"Shell command{'s' if commands > 1 else ''} ({commands} line{'s' if commands > 1 else ''})"

    count = len(lines)
    return f"{language or 'Code'} snippet ({count} line{'s' if count > 1 else ''})"


def describe_code_block(block: str, preceding: str = "", following: str = "") -> str:
    """Replace a fenced code block with a label the hosts can talk about."""
    match = re.match(r"```(\w+)?\n?(.*?)```", block, re.DOTALL)
    language = (match.group(1) or "") if match else ""
    code = match.group(2).strip() if match else ""
    if not code:
        return "[Code example]"

    immediate = (preceding[-100:] + " " + following[:100]).lower()
    full = (preceding + " " + following).lower()
    summary = summarize_code(code, language)

    if any(m in immediate for m in _INEFFECTIVE_MARKERS):
        return f"[INEFFECTIVE CODE EXAMPLE: {summary}]"
    if any(m in immediate for m in _EFFECTIVE_MARKERS):
        return f"[EFFECTIVE CODE EXAMPLE: {summary}]"
    if "❌" in full and "✅" not in immediate:
        return f"[INEFFECTIVE CODE EXAMPLE: {summary}]"
    if "✅" in full and "❌" not in immediate:
        return f"[EFFECTIVE CODE EXAMPLE: {summary}]"
    if any(w in full for w in ("pattern", "structure", "template")) or "example" in immediate:
        return f"[CODE PATTERN: {summary}]"
    return f"[CODE EXAMPLE: {summary}]"


def _replace_code_blocks(text: str) -> str:
    parts = []
    pos = 0
    for match in _CODE_BLOCK_RE.finditer(text):
        preceding = text[max(0, match.start() - 200):match.start()]
        following = text[match.end():match.end() + 200]
        parts.append(text[pos:match.start()])
        parts.append(describe_code_block(match.group(0), preceding, following))
        pos = match.end()
    parts.append(text[pos:])
    return "".join(parts)


# --- Lessons ---

def split_frontmatter(text: str) -> tuple[dict, str]:
    """Return (frontmatter dict, body). Missing frontmatter gives {}."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        logger.warning("Unparseable frontmatter, ignoring it")
        data = {}
    if not isinstance(data, dict):
        data = {}
    return data, text[match.end():]


def clean_markdown(body: str) -> str:
    """Strip markup that can't be spoken, keeping admonition fences."""
    cleaned = _COMMENT_RE.sub("", body)
    cleaned = _replace_code_blocks(cleaned)
    cleaned = _COMPONENT_RE.sub(r"[VISUAL_COMPONENT: \1]", cleaned)
    cleaned = _TAG_RE.sub("", cleaned)
    cleaned = _INLINE_CODE_RE.sub(r"\1", cleaned)
    cleaned = _IMAGE_RE.sub("[Image]", cleaned)
    cleaned = _LINK_RE.sub(r"\1", cleaned)
    return cleaned


def _flush_paragraph(lines: list[str], blocks: list[Block]) -> None:
    text = "\n".join(lines).strip()
    if text:
        blocks.append(Block(kind="main", text=text, position=len(blocks)))
    lines.clear()


def parse_lesson(text: str, source: str = "") -> Document:
    """Parse a lesson into main blocks and side-note blocks.

    Admonitions (:::tip[Title] ... :::) become side notes; every other
    paragraph is main content. Headings keep their text.
    """
    frontmatter, body = split_frontmatter(text)
    title = str(frontmatter.get("title", "")) if frontmatter else ""
    if not title and source:
        title = os.path.splitext(os.path.basename(source))[0]

    blocks: list[Block] = []
    paragraph: list[str] = []
    note_lines: list[str] | None = None
    note_type = ""
    note_title = ""

    for raw in clean_markdown(body).split("\n"):
        line = raw.rstrip()

        if note_lines is not None:
            if _ADMONITION_END_RE.match(line.strip()):
                note_text = "\n".join(note_lines).strip()
                if note_text:
                    blocks.append(Block(
                        kind="side_note",
                        text=note_text,
                        position=len(blocks),
                        note_type=note_type,
                        title=note_title,
                    ))
                note_lines = None
            else:
                note_lines.append(line)
            continue

        start = _ADMONITION_START_RE.match(line.strip())
        if start:
            _flush_paragraph(paragraph, blocks)
            note_type = start.group(1).lower()
            note_title = (start.group(2) or "").strip() or "Note"
            note_lines = [start.group(3)] if start.group(3) else []
            continue

        if not line.strip():
            _flush_paragraph(paragraph, blocks)
            continue

        paragraph.append(_HEADING_RE.sub("", line))

    _flush_paragraph(paragraph, blocks)
    if note_lines:
        # Unterminated admonition: keep its text as a side note
        blocks.append(Block(
            kind="side_note",
            text="\n".join(note_lines).strip(),
            position=len(blocks),
            note_type=note_type,
            title=note_title,
        ))

    return Document(source=source, blocks=blocks, title=title)


# --- Dialogue ---

def parse_dialogue(text: str, speakers: tuple[str, ...] = SPEAKERS) -> DialogueScript:
    """Parse "Speaker: text" lines into a DialogueScript.

    Lines that don't start with a declared speaker continue the previous
    utterance. Raises ScriptError if nothing parses.
    """
    wrapped = _DIALOG_TAG_RE.search(text)
    if wrapped:
        text = wrapped.group(1)

    label_re = re.compile(rf"^({'|'.join(re.escape(s) for s in speakers)}):\s*(.*)$")
    utterances: list[Utterance] = []
    speaker = None
    lines: list[str] = []
    dropped = 0

    def flush():
        body = " ".join(lines).strip()
        if speaker and body:
            utterances.append(Utterance(speaker=speaker, text=body))

    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue
        match = label_re.match(line)
        if match:
            flush()
            speaker = match.group(1)
            lines = [match.group(2)]
        elif speaker is None:
            dropped += 1
        else:
            lines.append(line)
    flush()

    if dropped:
        logger.warning("Dropped %d unattributed line(s) before the first speaker", dropped)
    if not utterances:
        raise ScriptError("No speaker-tagged dialogue found")
    return DialogueScript(utterances=utterances, speakers=tuple(speakers))


def estimate_token_count(text: str) -> int:
    """Rough token estimate (~4 chars per token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


# --- Script files ---

def write_script_file(
    path: str,
    script: DialogueScript,
    source: str,
    model: str,
    voices: dict[str, str] | None = None,
) -> dict:
    """Write a script as Markdown with YAML frontmatter.

    Returns {"tokenCount", "size"}.
    """
    if voices is None:
        voices = GEMINI_VOICES
    dialog = script.to_text()
    token_count = estimate_token_count(dialog)
    frontmatter = {
        "source": source,
        "speakers": [
            {"name": s, "role": SPEAKER_ROLES.get(s, "Host"), "voice": voices.get(s, "")}
            for s in script.speakers
        ],
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "model": model,
        "tokenCount": token_count,
    }
    content = "---\n" + yaml.safe_dump(frontmatter, sort_keys=False) + "---\n\n" + dialog + "\n"

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)

    return {"tokenCount": token_count, "size": len(content.encode("utf-8"))}


def read_script_file(path: str) -> tuple[dict, DialogueScript]:
    """Read a script file written by write_script_file()."""
    with open(path, encoding="utf-8") as f:
        content = f.read()

    if not _FRONTMATTER_RE.match(content):
        raise ScriptError(f"Invalid script format - missing frontmatter: {path}")
    frontmatter, dialog = split_frontmatter(content)

    names = tuple(
        s["name"] for s in frontmatter.get("speakers", []) if isinstance(s, dict) and s.get("name")
    )
    return frontmatter, parse_dialogue(dialog, names or SPEAKERS)
