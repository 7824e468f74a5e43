"""Tests for Anki and text export."""

from datetime import datetime

from anki_exporter import components_to_card_back, export_to_anki, save_cards_text
from models import Card, CardComponents


def make_card(front, back, tags=None):
    return Card(
        id=f"ai_agent_1_{front[:3]}",
        mode="general_topic",
        front=front,
        back=back,
        source_text="Photosynthesis converts light into chemical energy",
        created_at=datetime(2024, 1, 1),
        tags=tags,
    )


class TestExport:

    def test_writes_package_and_marks_exported(self, tmp_path):
        output = tmp_path / "deck.apkg"
        cards = [
            make_card("What does photosynthesis convert?", "Light into <b>chemical</b> energy", ["plant biology"]),
            make_card("Where does it happen?", "Chloroplasts"),
        ]

        exported = export_to_anki(cards, "Biology", str(output))

        assert output.exists() and output.stat().st_size > 0
        assert [c.export_status for c in exported] == ["exported", "exported"]
        assert [c.export_status for c in cards] == ["not_exported", "not_exported"]

    def test_saves_text_format(self, tmp_path):
        output = tmp_path / "cards.txt"
        save_cards_text([make_card("Q1", "A1"), make_card("Q2", "A2")], str(output))
        assert output.read_text(encoding="utf-8") == "Q1|A1\nQ2|A2\n"


class TestCardBack:

    def test_lays_out_available_components(self):
        components = CardComponents(
            translation="дом",
            examples=["The house is big.", "We bought a house."],
            linguistic_notes="Noun.",
        )
        assert components_to_card_back(components) == (
            "дом\n\n• The house is big.\n• We bought a house.\n\nNoun."
        )

    def test_skips_missing_components(self):
        assert components_to_card_back(CardComponents(translation="дом")) == "дом"
        assert components_to_card_back(CardComponents()) == ""
