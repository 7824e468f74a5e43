"""Five-way consensus validation of generated linguistic content.

Each specialist looks at one dimension (morphology, syntax, semantics,
consistency, completeness). They run concurrently and the panel's verdict is
positive only when enough of them agree.
"""

import asyncio
import logging
import math

from pydantic import ValidationError

from agents import ask_agent, extract_json_object
from cancellation import CancellationToken
from config import PipelineSettings
from errors import MalformedResponseError
from models import DetailedValidationResult, MultiValidationResult

logger = logging.getLogger(__name__)

VALIDATOR_KINDS = ("morphology", "syntax", "semantics", "consistency", "completeness")

FOCUS = {
    "morphology": "word forms, inflection, gender, number and part of speech",
    "syntax": "sentence structure, agreement and word order in the examples",
    "semantics": "meaning, nuance and accuracy of every translation",
    "consistency": "contradictions between different parts of the content",
    "completeness": "missing essential information a learner would need",
}


def required_votes(threshold: float, panel_size: int) -> int:
    """Smallest number of positive votes that reaches `threshold`."""
    return math.ceil(round(threshold * panel_size, 9))


def failed_result(kind: str) -> DetailedValidationResult:
    return DetailedValidationResult(
        is_valid=False,
        errors=[f"{kind} validation failed"],
        corrections=[],
        confidence=0.0,
        validator_kind=kind,
    )


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def aggregate_results(
    results: list[DetailedValidationResult],
    threshold: float = 0.75,
    attempt_count: int = 1,
) -> MultiValidationResult:
    """Combine the panel's verdicts into one MultiValidationResult."""
    if not results:
        return MultiValidationResult(
            overall_valid=False,
            average_confidence=0.0,
            results=[],
            final_errors=[],
            final_corrections=[],
            attempt_count=attempt_count,
        )

    valid_count = sum(1 for r in results if r.is_valid)
    overall_valid = valid_count >= required_votes(threshold, len(results))
    average_confidence = sum(r.confidence for r in results) / len(results)

    final_errors = []
    final_corrections = []
    for result in results:
        if result.is_valid:
            continue
        final_errors.extend(f"{result.validator_kind}: {e}" for e in result.errors)
        final_corrections.extend(f"{result.validator_kind}: {c}" for c in result.corrections)

    return MultiValidationResult(
        overall_valid=overall_valid,
        average_confidence=average_confidence,
        results=results,
        final_errors=_dedupe(final_errors),
        final_corrections=_dedupe(final_corrections),
        attempt_count=attempt_count,
    )


def _build_validator_prompt(
    kind: str, text: str, candidate_content: str, source_language: str, user_language: str
) -> str:
    return f"""Check the learning material below. Focus ONLY on {FOCUS[kind]}.

WORD OR PHRASE ({source_language}): "{text}"
LEARNER'S LANGUAGE: {user_language}

CONTENT TO CHECK:
{candidate_content}

Report only real problems in your area. Confidence is between 0 and 1.

JSON response:
{{
  "isValid": true,
  "errors": [],
  "corrections": [],
  "confidence": 0.9
}}"""


class ConsensusValidator:
    """Runs the specialist panel over one content item and aggregates the verdicts."""

    def __init__(
        self,
        client,
        settings: PipelineSettings | None = None,
        tracker=None,
        kinds: tuple[str, ...] = VALIDATOR_KINDS,
    ):
        self.client = client
        self.settings = settings or PipelineSettings()
        self.tracker = tracker
        self.kinds = kinds

    async def _validate_one(
        self,
        kind: str,
        text: str,
        candidate_content: str,
        source_language: str,
        user_language: str,
        cancellation: CancellationToken | None = None,
    ) -> DetailedValidationResult:
        agent_name = f"{kind}_validator"
        response = await ask_agent(
            self.client,
            agent_name,
            _build_validator_prompt(kind, text, candidate_content, source_language, user_language),
            max_retries=self.settings.max_retries,
            base_delay_ms=self.settings.retry_base_delay_ms,
            tracker=self.tracker,
            description=f"{kind.capitalize()} check",
            cancellation=cancellation,
        )
        if response is None:
            raise MalformedResponseError(f"No response from {agent_name} agent", agent_name)
        data = extract_json_object(response.content, agent_name)
        data["validatorKind"] = kind
        try:
            return DetailedValidationResult.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected {agent_name} response shape", agent_name, response.content) from e

    async def run_multiple_validation(
        self,
        text: str,
        candidate_content: str,
        source_language: str,
        user_language: str,
        cancellation: CancellationToken | None = None,
        attempt_count: int = 1,
    ) -> MultiValidationResult:
        """
        Validate `candidate_content` with every specialist at once.

        A specialist that fails counts as an invalid vote with zero confidence;
        it never stops the others.
        """
        cancellation = cancellation or CancellationToken()
        cancellation.raise_if_cancelled("consensus_validation")

        outcomes = await asyncio.gather(
            *(
                self._validate_one(kind, text, candidate_content, source_language, user_language, cancellation)
                for kind in self.kinds
            ),
            return_exceptions=True,
        )
        cancellation.raise_if_cancelled("consensus_validation")

        results = []
        for kind, outcome in zip(self.kinds, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"{kind} validator failed: {outcome}")
                results.append(failed_result(kind))
            else:
                results.append(outcome)

        verdict = aggregate_results(results, self.settings.consensus_threshold, attempt_count)
        logger.info(
            f"Consensus for '{text[:30]}': {'valid' if verdict.overall_valid else 'invalid'} "
            f"({sum(r.is_valid for r in results)}/{len(results)} agree, "
            f"confidence {verdict.average_confidence:.2f})"
        )
        return verdict
