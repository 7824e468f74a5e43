"""Quality gate applied to cards before final validation."""

from config import QUALITY_THRESHOLD
from models import GeneratedCard, QualityVerdict


def passes_quality_gate(verdict: QualityVerdict, threshold: float = QUALITY_THRESHOLD) -> bool:
    return verdict.is_worthwhile and verdict.quality_score >= threshold


def filter_cards(
    pairs: list[tuple[GeneratedCard, QualityVerdict]],
    threshold: float = QUALITY_THRESHOLD,
) -> list[tuple[GeneratedCard, QualityVerdict]]:
    """Keep the (card, verdict) pairs whose verdict is worthwhile and scores at least `threshold`."""
    return [(card, verdict) for card, verdict in pairs if passes_quality_gate(verdict, threshold)]
