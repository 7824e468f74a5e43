"""Tests for the five-way consensus validator."""

import pytest

from cancellation import CancellationToken
from errors import PipelineCancelledError, TransientCallError
from models import DetailedValidationResult
from tests.fakes import FakeClient
from validation import VALIDATOR_KINDS, ConsensusValidator, aggregate_results, required_votes


def verdict(is_valid, confidence=0.9, errors=None, corrections=None):
    return {
        "isValid": is_valid,
        "errors": errors or [],
        "corrections": corrections or [],
        "confidence": confidence,
    }


def panel(pattern):
    """Scripted answers for each validator from a list of booleans."""
    return {
        f"{kind}_validator": verdict(valid, errors=[] if valid else [f"bad {kind}"])
        for kind, valid in zip(VALIDATOR_KINDS, pattern)
    }


class TestAggregation:

    def test_required_votes(self):
        assert required_votes(0.75, 5) == 4
        assert required_votes(0.6, 5) == 3
        assert required_votes(0.75, 4) == 3

    def test_dedupes_and_tags_errors(self):
        results = [
            DetailedValidationResult(is_valid=False, errors=["gender wrong", "gender wrong"],
                                     corrections=["use 'die'"], confidence=0.5, validator_kind="morphology"),
            DetailedValidationResult(is_valid=False, errors=["gender wrong"], confidence=0.7,
                                     validator_kind="semantics"),
            DetailedValidationResult(is_valid=True, errors=["ignored"], confidence=1.0,
                                     validator_kind="syntax"),
        ]
        result = aggregate_results(results)
        assert result.final_errors == ["morphology: gender wrong", "semantics: gender wrong"]
        assert result.final_corrections == ["morphology: use 'die'"]

    def test_empty_panel_is_invalid(self):
        assert aggregate_results([]).overall_valid is False


class TestConsensusValidator:

    @pytest.mark.asyncio
    async def test_four_of_five_is_valid(self, settings):
        client = FakeClient(panel([True, True, True, True, False]))
        result = await ConsensusValidator(client, settings).run_multiple_validation(
            "Haus", "das Haus (noun, neuter)", "German", "English"
        )
        assert result.overall_valid is True
        assert result.final_errors == ["completeness: bad completeness"]

    @pytest.mark.asyncio
    async def test_three_of_five_is_invalid(self, settings):
        client = FakeClient(panel([True, True, True, False, False]))
        result = await ConsensusValidator(client, settings).run_multiple_validation(
            "Haus", "das Haus", "German", "English"
        )
        assert result.overall_valid is False
        assert len(result.final_errors) == 2

    @pytest.mark.asyncio
    async def test_runs_exactly_five_specialists(self, settings):
        client = FakeClient(panel([True] * 5))
        result = await ConsensusValidator(client, settings).run_multiple_validation(
            "Haus", "das Haus", "German", "English"
        )
        assert sorted(client.calls) == sorted(f"{kind}_validator" for kind in VALIDATOR_KINDS)
        assert [r.validator_kind for r in result.results] == list(VALIDATOR_KINDS)

    @pytest.mark.asyncio
    async def test_failing_specialist_counts_as_invalid_vote(self, settings):
        responses = panel([True] * 5)
        responses["syntax_validator"] = TransientCallError("timeout")
        client = FakeClient(responses)

        result = await ConsensusValidator(client, settings).run_multiple_validation(
            "Haus", "das Haus", "German", "English"
        )

        syntax = next(r for r in result.results if r.validator_kind == "syntax")
        assert syntax.is_valid is False
        assert syntax.confidence == 0
        assert syntax.errors == ["syntax validation failed"]
        assert result.overall_valid is True
        assert result.average_confidence == pytest.approx(0.9 * 4 / 5)

    @pytest.mark.asyncio
    async def test_unparsable_specialist_counts_as_invalid_vote(self, settings):
        responses = panel([True] * 5)
        responses["semantics_validator"] = "Looks fine to me!"
        responses["morphology_validator"] = "no idea"
        client = FakeClient(responses)

        result = await ConsensusValidator(client, settings).run_multiple_validation(
            "Haus", "das Haus", "German", "English"
        )
        assert result.overall_valid is False
        assert "semantics: semantics validation failed" in result.final_errors

    @pytest.mark.asyncio
    async def test_cancelled_during_validation(self, settings):
        token = CancellationToken()

        def cancel_then_answer(messages):
            token.cancel()
            return verdict(True)

        responses = panel([True] * 5)
        responses["morphology_validator"] = cancel_then_answer
        client = FakeClient(responses)

        with pytest.raises(PipelineCancelledError):
            await ConsensusValidator(client, settings).run_multiple_validation(
                "Haus", "das Haus", "German", "English", cancellation=token
            )
