"""
Main CLI application for the flashcard pipeline.
Runs the multi-agent workflow (or the fast component path) and exports to Anki.
"""

import argparse
import asyncio
from datetime import datetime
import logging
import os
from pathlib import Path
import signal
import uuid

from anki_exporter import components_to_card_back, export_to_anki, save_cards_text
from cancellation import CancellationToken
from components import ParallelComponentAssembler
from config import DEFAULT_MODEL, PipelineSettings
from errors import PipelineCancelledError
from models import Card, ProgressUpdate
from openai_client import TextGenerationClient
from orchestrator import WorkflowOrchestrator
from tracker import ApiRequestTracker
from validation import ConsensusValidator

# Set up logging
LOG_DIR = Path("logs")
LOG_DIR.mkdir(exist_ok=True)

timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
log_file = LOG_DIR / f"flashcard_generation_{timestamp}.log"

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_file),
        logging.StreamHandler()
    ],
    force=True,
)


def print_progress(update: ProgressUpdate) -> None:
    if update.current_request:
        print(f"  [{update.completed}/{update.total}] {update.current_request.description}...")


async def create_cards(text: str, settings: PipelineSettings, cancellation: CancellationToken) -> list[Card]:
    """Full multi-agent workflow over one block of text."""
    client = TextGenerationClient(model=settings.model)
    orchestrator = WorkflowOrchestrator(client, settings, on_progress=print_progress)
    return await orchestrator.create_cards_from_text(text, cancellation)


async def create_vocabulary_cards(
    words: list[str],
    settings: PipelineSettings,
    cancellation: CancellationToken,
    target_language: str,
    source_language: str | None,
    image_mode: str,
    validate_notes: bool,
) -> list[Card]:
    """Fast path: one card per word, components built concurrently."""
    client = TextGenerationClient(model=settings.model)
    cards = []
    for word in words:
        tracker = ApiRequestTracker(print_progress)
        validator = ConsensusValidator(client, settings, tracker) if validate_notes else None
        assembler = ParallelComponentAssembler(client, settings, tracker, validator)
        components = await assembler.assemble(
            word,
            target_language,
            source_language=source_language,
            should_generate_image=image_mode != "off",
            image_mode=image_mode,
            cancellation=cancellation,
        )
        for error in components.errors:
            print(f"⚠ {word}: {error.component} failed ({error.error_message})")
        back = components_to_card_back(components)
        if not back:
            logging.warning(f"Nothing was generated for '{word}', skipping")
            continue
        cards.append(Card(
            id=f"fast_{uuid.uuid4().hex}",
            mode="language_learning",
            front=components.front or word,
            back=back,
            source_text=word,
            created_at=datetime.now(),
        ))
    return cards


async def run(args: argparse.Namespace) -> list[Card]:
    settings = PipelineSettings(model=args.model, max_retries=args.retries)
    cancellation = CancellationToken()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancellation.cancel)
    except NotImplementedError:
        pass  # Windows event loops

    text = Path(args.input_file).read_text(encoding="utf-8")
    if args.fast:
        words = [line.strip() for line in text.splitlines() if line.strip()]
        print(f"Building {len(words)} vocabulary cards...")
        return await create_vocabulary_cards(
            words,
            settings,
            cancellation,
            args.target_language,
            args.source_language,
            args.image_mode,
            args.validate_notes,
        )

    print(f"Running multi-agent workflow on {len(text)} characters...")
    return await create_cards(text, settings, cancellation)


# CLI entry point
if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Generate Anki flashcards from text using a multi-agent AI workflow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py lecture_notes.txt
  python main.py lecture_notes.txt --deck "Biology 101" --model gpt-4o-mini
  python main.py words.txt --fast --target-language Russian --source-language English
  python main.py words.txt --fast --target-language German --image-mode smart --validate-notes
        """
    )

    parser.add_argument(
        "input_file",
        help="Text file to generate flashcards from (one word per line with --fast)"
    )

    parser.add_argument(
        "--deck",
        default="Generated Flashcards",
        help="Name of the Anki deck (default: Generated Flashcards)"
    )

    parser.add_argument(
        "--model",
        default=DEFAULT_MODEL,
        help=f"OpenAI model to use (default: {DEFAULT_MODEL})"
    )

    parser.add_argument(
        "--retries",
        type=int,
        default=PipelineSettings().max_retries,
        help="Retries per API call on transient errors"
    )

    parser.add_argument(
        "--fast",
        action="store_true",
        help="Build vocabulary cards component by component instead of running the full workflow"
    )

    parser.add_argument("--target-language", default="English", help="Language to translate into (--fast)")
    parser.add_argument("--source-language", default=None, help="Language of the words; enables grammar notes (--fast)")

    parser.add_argument(
        "--image-mode",
        default="off",
        choices=["off", "smart", "always"],
        help="Image generation for --fast cards (default: off)"
    )

    parser.add_argument(
        "--validate-notes",
        action="store_true",
        help="Review grammar notes with the five-validator panel (--fast)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging (show every card and verdict in the log)"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.info("Verbose mode enabled")

    if not os.path.exists(args.input_file):
        print(f"Error: File not found: {args.input_file}")
        logging.error(f"File not found: {args.input_file}")
        exit(1)

    print(f"Log file: {log_file}")

    try:
        cards = asyncio.run(run(args))
    except PipelineCancelledError as e:
        print(f"\n✗ {e.message}. No cards were created.")
        exit(1)

    if not cards:
        print("No cards were created.")
        exit(1)

    output_file = "output.apkg"
    export_to_anki(cards, args.deck, output_file)
    save_cards_text(cards, "flashcards.txt")

    print(f"\nTo import into Anki:")
    print(f"1. Open Anki")
    print(f"2. File → Import")
    print(f"3. Select {output_file}")

    print(f"\n{'='*60}")
    print(f"Done! Created {len(cards)} flashcards")
    print(f"{'='*60}\n")

    logging.info(f"Completed! Created {len(cards)} flashcards")
    logging.info(f"Log file saved to: {log_file}")
