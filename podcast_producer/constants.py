"""All magic numbers and configuration constants."""

# Speakers and voices
SPEAKERS = ("Alex", "Sam")                   # instructor, senior engineer
SPEAKER_ROLES = {"Alex": "Instructor", "Sam": "Senior Engineer"}
GEMINI_VOICES = {"Alex": "Kore", "Sam": "Charon"}   # prebuilt Gemini voices
EDGE_VOICES = {"Alex": "en-US-AndrewNeural", "Sam": "en-US-BrianNeural"}

# Lesson parsing
MIN_CONTENT_CHARS = 100             # lessons shorter than this are rejected
NOTE_TYPES = ("tip", "warning", "info", "note", "caution")

# Deduplication (tunable, empirically chosen)
DEDUP_HIGH_THRESHOLDS = {
    "tip": 0.70,
    "info": 0.70,
    "note": 0.70,
    "warning": 0.75,
    "caution": 0.75,
}
DEDUP_HIGH_DEFAULT = 0.75           # note types not listed above
DEDUP_LOW_THRESHOLD = 0.30          # below this a side-note is kept verbatim
UNIQUE_SENTENCE_THRESHOLD = 0.10    # sentence vs whole context, condense branch
MIN_SENTENCE_CHARS = 20             # shorter sentence fragments are discarded
MIN_CONDENSED_CHARS = 40            # condensed text shorter than this is removed
DEDUP_CONTEXT_WINDOW = 2            # main blocks on each side of a side-note
MIN_TOKEN_LENGTH = 4                # tokens of 3 chars or fewer are ignored

# Chunking
CHARS_PER_MINUTE = 750              # crude speech-rate proxy
TARGET_CHUNK_SECONDS = 300          # 5 minutes
MAX_CHUNK_SECONDS = 600             # hard ceiling
MIN_CHUNK_SECONDS = 120             # final chunk below this is merged back

# Synthesis
TTS_MODEL = "gemini-2.5-pro-preview-tts"
SCRIPT_MODEL = "gemini-2.5-flash"
SCRIPT_JOBS = 3                     # lessons rendered concurrently
TOKEN_LIMIT = 8192                  # per-request TTS input ceiling
TOKEN_SAFETY_MARGIN = 500
CHARS_PER_TOKEN = 4                 # local estimate for engines without a tokenizer
TTS_RETRY_COUNT = 4                 # max attempts per chunk
TTS_RETRY_BASE_DELAY = 1.0          # seconds, doubles per attempt
RETRYABLE_STATUS = (429, 500, 503, 504)
PERMANENT_STATUS = (400, 401, 403, 404)
DEFAULT_WORKERS = 1                 # chunks dispatched one at a time
EDGE_SPEAKER_GAP_MS = 300           # silence between turns for edge-tts
EDGE_RATE = "+0%"

# Audio container
SAMPLE_RATE = 24000                 # Hz
CHANNELS = 1
BITS_PER_SAMPLE = 16
WAV_HEADER_SIZE = 44
OUTPUT_BITRATE = "128k"             # MP3 transcode bitrate

# Paths
DOCS_DIR = "website/docs"
SCRIPT_OUTPUT_DIR = "scripts/output/podcasts"
AUDIO_OUTPUT_DIR = "website/static/audio"
MANIFEST_NAME = "manifest.json"
AUDIO_URL_PREFIX = "/audio"

VERSION = "0.1.0"
