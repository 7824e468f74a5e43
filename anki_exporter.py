"""Anki export of finished cards."""

import html
import logging

import genanki

from config import FLASHCARD_MODEL, FLASHCARD_DECK_ID
from models import Card, CardComponents

logger = logging.getLogger(__name__)


def export_to_anki(cards: list[Card], deck_name: str, output_file: str) -> list[Card]:
    """
    Export cards to an Anki package (.apkg) file.

    Field content is HTML-escaped; tags with spaces are joined with
    underscores since Anki splits tags on whitespace. Returns the cards
    marked as exported.
    """
    print(f"Creating Anki deck: {deck_name}...")

    deck = genanki.Deck(
        FLASHCARD_DECK_ID,
        deck_name
    )

    for card in cards:
        note = genanki.Note(
            model=FLASHCARD_MODEL,
            fields=[html.escape(card.front), html.escape(card.back)],
            tags=[tag.strip().replace(" ", "_") for tag in card.tags or [] if tag.strip()],
        )
        deck.add_note(note)

    genanki.Package(deck).write_to_file(output_file)
    print(f"✓ Created Anki package: {output_file}")
    logger.info(f"Exported {len(cards)} cards to {output_file}")

    return [card.model_copy(update={"export_status": "exported"}) for card in cards]


def save_cards_text(cards: list[Card], output_file: str = "flashcards.txt") -> None:
    """Save cards to a text file in Question|Answer format."""
    with open(output_file, "w", encoding="utf-8") as f:
        for card in cards:
            f.write(f"{card.front}|{card.back}\n")
    print(f"✓ Text format saved to: {output_file}")


def components_to_card_back(components: CardComponents) -> str:
    """Lay out the assembled components as the back of a vocabulary card."""
    parts = []
    if components.translation:
        parts.append(components.translation)
    if components.examples:
        parts.append("\n".join(f"• {example}" for example in components.examples))
    if components.linguistic_notes:
        parts.append(components.linguistic_notes)
    if components.image_url:
        parts.append(components.image_url)
    return "\n\n".join(parts)
