"""Configuration constants and logging setup."""

from dataclasses import dataclass
import logging
import os

from openai import AsyncOpenAI
import genanki

# Set up logging - will be reconfigured in main.py when the log file is created
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)

DEFAULT_MODEL = os.getenv("FLASHCARD_MODEL", "gpt-4o")
DEFAULT_IMAGE_MODEL = os.getenv("FLASHCARD_IMAGE_MODEL", "dall-e-3")

# Retry defaults for every capability call
MAX_RETRIES = int(os.getenv("FLASHCARD_MAX_RETRIES", "2"))
RETRY_BASE_DELAY_MS = int(os.getenv("FLASHCARD_RETRY_BASE_DELAY_MS", "1000"))

CACHE_TTL_SECONDS = int(os.getenv("FLASHCARD_CACHE_TTL_SECONDS", "1800"))
# Oldest results are evicted beyond this many cached texts
CACHE_MAX_ENTRIES = int(os.getenv("FLASHCARD_CACHE_MAX_ENTRIES", "10"))

# Cards scoring below this (0-10 scale) never leave the quality check
QUALITY_THRESHOLD = 7

# Fraction of the validator panel that has to agree for a positive verdict
CONSENSUS_THRESHOLD = 0.75

LINGUISTIC_MAX_ATTEMPTS = 3

DEFAULT_CARD_MODE = "general_topic"

# IMPORTANT: These IDs should be hardcoded and unique
# Generated once using: python3 -c "import random; print(random.randrange(1 << 30, 1 << 31))"
FLASHCARD_MODEL_ID = 1607392319
FLASHCARD_DECK_ID = 2059400110

# Define the Anki model (note type) - this should be consistent
FLASHCARD_MODEL = genanki.Model(
    FLASHCARD_MODEL_ID,
    'AI Generated Flashcard Model',
    fields=[
        {'name': 'Question'},
        {'name': 'Answer'},
    ],
    templates=[
        {
            'name': 'Card 1',
            'qfmt': '{{Question}}',
            'afmt': '{{FrontSide}}<hr id="answer">{{Answer}}',
        },
    ])


@dataclass
class PipelineSettings:
    """Per-run knobs shared by the orchestrator and the component assembler."""
    model: str = DEFAULT_MODEL
    max_retries: int = MAX_RETRIES
    retry_base_delay_ms: int = RETRY_BASE_DELAY_MS
    quality_threshold: float = QUALITY_THRESHOLD
    consensus_threshold: float = CONSENSUS_THRESHOLD
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    cache_max_entries: int = CACHE_MAX_ENTRIES
    linguistic_max_attempts: int = LINGUISTIC_MAX_ATTEMPTS


_client: AsyncOpenAI | None = None


def get_client() -> AsyncOpenAI:
    """Return the shared OpenAI client, creating it on first use."""
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))
    return _client
