"""Two-speaker script rendering through an LLM, plus quality checks."""

import logging
import os
import re
from abc import ABC, abstractmethod

from google import genai

from podcast_producer.constants import SCRIPT_MODEL, SPEAKERS
from podcast_producer.errors import PodcastError, ScriptError
from podcast_producer.models import DialogueScript, Document
from podcast_producer.parser import parse_dialogue
from podcast_producer.tts import resolve_api_key, retry_with_backoff

logger = logging.getLogger(__name__)

_DIALOG_TAG_RE = re.compile(r"<podcast_dialog>(.*?)</podcast_dialog>", re.DOTALL)

# Phrases that tend to come back when the same idea is restated
REPETITION_PHRASES = (
    "parallel work",
    "10x productivity",
    "autonomous mode",
    "game changer",
    "real gain",
    "actual productivity",
    "speed per task",
    "throughput",
    "multiple projects",
    "three agents",
)
CIRCULAR_PHRASES = (
    "as i mentioned",
    "going back to",
    "to circle back",
    "like i said",
    "as we discussed",
    "returning to",
)
REPETITION_WINDOW = 5
REPETITION_LIMIT = 3

PROMPT_TEMPLATE = """You write podcast scripts for educational content aimed at senior software engineers.

TASK: Turn the course material below into a natural two-person podcast conversation.

SPEAKERS:
- {host}: Instructor with 15+ years of experience. Clear, measured, guides the conversation.
- {guest}: Senior engineer with 8 years of experience. Asks the questions a peer would ask and ties ideas to production work.

STYLE:
- Make clear arguments and explore trade-offs; go deep on fewer points.
- Use analogies and real production scenarios.
- Stay professional: no hype, no exclamation-heavy enthusiasm, no laundry lists.

DEDUPLICATION:
The material was written for readers. [PEDAGOGICAL ...] sections marked below carry only
information that is new relative to the main text. Fold them into the discussion of the
concept they belong to instead of treating them as separate topics. Cover each idea once;
never return to a point without adding substantial new insight, and avoid transitions such
as "as I mentioned" or "to circle back".{intro}

OUTPUT FORMAT:
Wrap the whole dialogue in <podcast_dialog></podcast_dialog> tags. Every turn starts with
the speaker name and a colon, turns separated by a blank line:

<podcast_dialog>
{host}: ...

{guest}: ...
</podcast_dialog>

LENGTH: Target 6,000-7,500 tokens. Shorter than the source is expected.

TITLE: {title}

MATERIAL:
{content}
"""

INTRO_SECTION = """

THIS IS THE COURSE INTRODUCTION:
Include a brief (3-5 exchanges) acknowledgement that the course and this script were produced
with AI tools, note the recursion lightly, then return to introducing the course."""


def build_dialog_prompt(content: str, title: str, speakers: tuple[str, ...] = SPEAKERS) -> str:
    host, guest = speakers[0], speakers[1]
    intro = INTRO_SECTION if title.lower() == "intro" else ""
    return PROMPT_TEMPLATE.format(
        host=host, guest=guest, intro=intro, title=title, content=content
    )


def extract_dialog(response: str) -> str:
    """Dialogue inside <podcast_dialog> tags. Raises ScriptError if absent."""
    match = _DIALOG_TAG_RE.search(response or "")
    if not match:
        preview = (response or "")[:200]
        raise ScriptError(f"Response missing <podcast_dialog> tags. Preview: {preview}...")
    dialog = match.group(1).strip()
    if not dialog:
        raise ScriptError("Response contains an empty <podcast_dialog> block")
    return dialog


class ScriptRenderer(ABC):
    """Turns a prompt into a raw LLM response."""

    model = ""

    @abstractmethod
    def render(self, prompt: str) -> str:
        pass


class GeminiScriptRenderer(ScriptRenderer):
    def __init__(self, api_key: str | None = None, model: str | None = None, client=None):
        self.model = model or os.getenv("PODCAST_SCRIPT_MODEL", SCRIPT_MODEL)
        if client is None:
            api_key = api_key or resolve_api_key()
            if not api_key:
                raise PodcastError(
                    "No API key found for script generation. "
                    "Set GOOGLE_API_KEY, GEMINI_API_KEY, or GCP_API_KEY."
                )
            client = genai.Client(api_key=api_key)
        self.client = client

    def render(self, prompt: str) -> str:
        response = retry_with_backoff(
            lambda: self.client.models.generate_content(model=self.model, contents=prompt),
            label="[script]",
        )
        return response.text or ""


class StaticRenderer(ScriptRenderer):
    """Returns a fixed response. For offline runs and tests."""

    model = "static"

    def __init__(self, response: str):
        self.response = response
        self.prompts: list[str] = []

    def render(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response


def render_script(
    document: Document,
    renderer: ScriptRenderer,
    speakers: tuple[str, ...] = SPEAKERS,
) -> DialogueScript:
    """Render a (deduplicated) document into a DialogueScript."""
    prompt = build_dialog_prompt(document.to_prompt_text(), document.title, speakers)
    response = renderer.render(prompt)
    return parse_dialogue(extract_dialog(response), speakers)


def validate_dialog_quality(script: DialogueScript) -> list[str]:
    """Warn about phrases repeated within a few turns and circular transitions."""
    warnings = []
    turns = [u.text.lower() for u in script.utterances]

    for i in range(len(turns) - REPETITION_WINDOW + 1):
        window = " ".join(turns[i:i + REPETITION_WINDOW])
        for phrase in REPETITION_PHRASES:
            occurrences = window.count(phrase)
            if occurrences >= REPETITION_LIMIT:
                warnings.append(
                    f'Potential repetition: "{phrase}" appears {occurrences} times within '
                    f"{REPETITION_WINDOW} exchanges (exchanges {i + 1}-{i + REPETITION_WINDOW})"
                )

    full_text = " ".join(turns)
    for phrase in CIRCULAR_PHRASES:
        if phrase in full_text:
            warnings.append(
                f'Circular transition detected: "{phrase}" - this often signals unnecessary repetition'
            )

    return warnings
