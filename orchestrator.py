"""
Multi-agent workflow: plan, analyze, generate, quality-check and validate.

Stages run strictly one after another. Every stage has a static fallback, so
a failing or unparsable capability call degrades the result instead of
aborting the run. Only cancellation escapes.
"""

from dataclasses import dataclass
from datetime import datetime
import hashlib
import logging
import re
import time
from typing import Any, Awaitable, Callable
import uuid

from agents import (
    ask_agent,
    build_analyzer_prompt,
    build_generator_prompt,
    build_quality_prompt,
    build_supervisor_prompt,
    build_validator_prompt,
    parse_agent_response,
)
from cancellation import CancellationToken
from config import DEFAULT_CARD_MODE, PipelineSettings
from errors import MalformedResponseError, PipelineCancelledError
from models import (
    Card,
    ConceptInfo,
    ContentAnalysis,
    ContextMetadata,
    GeneratedCard,
    GeneratedCardSet,
    ProgressUpdate,
    QualityVerdict,
    Stage,
    SupervisorDecision,
    ValidationResult,
    WorkflowContext,
)
from quality import filter_cards
from tracker import ApiRequestTracker

logger = logging.getLogger(__name__)

PIPELINE = (Stage.PLAN, Stage.ANALYZE, Stage.GENERATE, Stage.QUALITY_CHECK, Stage.VALIDATE)


# =============================================================================
# Context helpers
# =============================================================================


def detect_language(text: str) -> str:
    return "russian" if re.search(r"[а-яё]", text, re.IGNORECASE) else "english"


def estimate_complexity(text: str) -> str:
    words = len(text.split())
    sentences = len(re.split(r"[.!?]+", text))
    avg_words_per_sentence = words / sentences

    if avg_words_per_sentence < 10 and words < 100:
        return "simple"
    if avg_words_per_sentence < 20 and words < 500:
        return "medium"
    return "advanced"


def new_context(text: str) -> WorkflowContext:
    return WorkflowContext(
        original_text=text,
        metadata=ContextMetadata(
            text_length=len(text),
            detected_language=detect_language(text),
            complexity=estimate_complexity(text),
        ),
    )


def drop_blank_cards(cards: list[GeneratedCard]) -> list[GeneratedCard]:
    """Cards with an empty front or back never leave the pipeline."""
    kept = [card for card in cards if not card.is_blank]
    if len(kept) < len(cards):
        logger.warning(f"Dropped {len(cards) - len(kept)} cards with an empty front or back")
    return kept


# =============================================================================
# Fallbacks
# =============================================================================


def fallback_decision() -> SupervisorDecision:
    return SupervisorDecision(
        strategy="multiple_concepts",
        stages=["analyze", "generate", "quality_check", "validate"],
        instructions={
            "analyze": "Identify the key concepts in the text",
            "generate": "Create cards for the main concepts",
            "quality_check": "Check the quality of each question",
            "validate": "Run a final check",
        },
        expected_output="A set of quality flashcards",
        reasoning="Fallback strategy - general approach",
    )


def fallback_analysis(text: str) -> ContentAnalysis:
    return ContentAnalysis(
        main_topic="Content analysis",
        key_points=[text[:100]],
        concepts=[ConceptInfo(name="Main concept", definition=text[:200], importance="medium")],
        relationships=[],
        learning_objectives=["Understand the main idea"],
        complexity="medium",
        estimated_card_count=2,
    )


def fallback_cards(text: str) -> list[GeneratedCard]:
    return [
        GeneratedCard(
            front="What is discussed in this text?",
            back=text[:200] + ("..." if len(text) > 200 else ""),
            difficulty="medium",
            concept="Main idea",
        )
    ]


def fallback_verdict() -> QualityVerdict:
    return QualityVerdict(
        quality_score=7,
        relevance_score=7,
        difficulty_score=7,
        issues=[],
        improvements=[],
        is_worthwhile=True,
        reasoning="Fallback quality check - acceptable card",
    )


def fallback_validation(cards: list[GeneratedCard]) -> ValidationResult:
    return ValidationResult(
        is_valid=True,
        overall_score=75,
        card_scores={i: 75 for i in range(len(cards))},
        issues=[],
        suggestions=[],
        final_recommendation="Cards passed basic validation",
    )


# =============================================================================
# Orchestrator
# =============================================================================


@dataclass
class RunScope:
    """Per-invocation collaborators handed to every stage."""
    cancellation: CancellationToken
    tracker: ApiRequestTracker


@dataclass
class StageSpec:
    handler: Callable[[WorkflowContext, RunScope], Awaitable[Any]]
    fallback: Callable[[WorkflowContext], Any]


class WorkflowOrchestrator:
    """Drives Plan → Analyze → Generate → QualityCheck → Validate."""

    def __init__(
        self,
        client,
        settings: PipelineSettings | None = None,
        on_progress: Callable[[ProgressUpdate], None] | None = None,
        use_cache: bool = True,
    ):
        self.client = client
        self.settings = settings or PipelineSettings()
        self.on_progress = on_progress
        self.use_cache = use_cache
        self._cache: dict[str, tuple[list[GeneratedCard], float]] = {}
        self._stages: dict[Stage, StageSpec] = {
            Stage.PLAN: StageSpec(self._plan, lambda ctx: fallback_decision()),
            Stage.ANALYZE: StageSpec(self._analyze, lambda ctx: fallback_analysis(ctx.original_text)),
            Stage.GENERATE: StageSpec(self._generate, lambda ctx: fallback_cards(ctx.original_text)),
            Stage.QUALITY_CHECK: StageSpec(self._quality_check, self._quality_fallback),
            Stage.VALIDATE: StageSpec(
                self._validate, lambda ctx: fallback_validation(ctx.results[Stage.QUALITY_CHECK])
            ),
        }

    # -- cache ---------------------------------------------------------------

    @staticmethod
    def _cache_key(text: str) -> str:
        return hashlib.sha256(f"multi_agent:{text}".encode("utf-8")).hexdigest()

    def _get_cached(self, text: str) -> list[GeneratedCard] | None:
        if not self.use_cache:
            return None
        entry = self._cache.get(self._cache_key(text))
        if entry is None:
            return None
        cards, stored_at = entry
        if time.monotonic() - stored_at > self.settings.cache_ttl_seconds:
            del self._cache[self._cache_key(text)]
            return None
        return cards

    def _set_cached(self, text: str, cards: list[GeneratedCard]) -> None:
        if not self.use_cache or self.settings.cache_ttl_seconds <= 0 or self.settings.cache_max_entries <= 0:
            return
        now = time.monotonic()
        expired = [k for k, (_, stored_at) in self._cache.items() if now - stored_at > self.settings.cache_ttl_seconds]
        for key in expired:
            del self._cache[key]

        key = self._cache_key(text)
        self._cache.pop(key, None)
        self._cache[key] = (cards, now)
        while len(self._cache) > self.settings.cache_max_entries:
            # insertion order, oldest first
            del self._cache[next(iter(self._cache))]

    def clear_cache(self) -> None:
        self._cache.clear()

    # -- capability calls ----------------------------------------------------

    async def _ask(self, agent_name: str, prompt: str, model_cls, scope: RunScope, description: str):
        response = await ask_agent(
            self.client,
            agent_name,
            prompt,
            max_retries=self.settings.max_retries,
            base_delay_ms=self.settings.retry_base_delay_ms,
            tracker=scope.tracker,
            description=description,
            cancellation=scope.cancellation,
        )
        return parse_agent_response(agent_name, response, model_cls)

    async def _plan(self, context: WorkflowContext, scope: RunScope) -> SupervisorDecision:
        decision = await self._ask(
            "supervisor",
            build_supervisor_prompt(context.original_text, context.metadata),
            SupervisorDecision,
            scope,
            "Planning card strategy",
        )
        logger.info(f"Supervisor strategy: {decision.strategy} ({decision.reasoning})")
        return decision

    async def _analyze(self, context: WorkflowContext, scope: RunScope) -> ContentAnalysis:
        decision: SupervisorDecision = context.results[Stage.PLAN]
        analysis = await self._ask(
            "content_analyzer",
            build_analyzer_prompt(context.original_text, decision.instruction_for("analyze")),
            ContentAnalysis,
            scope,
            "Analyzing content",
        )
        context.metadata.topic = analysis.main_topic
        logger.info(f"Analysis: '{analysis.main_topic}', {len(analysis.concepts)} concepts")
        return analysis

    async def _generate(self, context: WorkflowContext, scope: RunScope) -> list[GeneratedCard]:
        decision: SupervisorDecision = context.results[Stage.PLAN]
        analysis: ContentAnalysis = context.results[Stage.ANALYZE]
        card_set = await self._ask(
            "card_generator",
            build_generator_prompt(context.original_text, analysis, decision.instruction_for("generate")),
            GeneratedCardSet,
            scope,
            "Generating cards",
        )
        cards = drop_blank_cards(card_set.cards)
        if not cards:
            raise MalformedResponseError("Card generator returned no usable cards", "card_generator")
        logger.info(f"Generated {len(cards)} cards")
        return cards

    async def _judge(self, card: GeneratedCard, context: WorkflowContext, scope: RunScope) -> QualityVerdict:
        decision: SupervisorDecision = context.results[Stage.PLAN]
        try:
            return await self._ask(
                "question_quality",
                build_quality_prompt(card, context.original_text, decision.instruction_for("quality_check")),
                QualityVerdict,
                scope,
                f"Checking '{card.front[:40]}'",
            )
        except PipelineCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Quality check failed for '{card.front[:40]}': {e}. Using fallback verdict")
            return fallback_verdict()

    async def _quality_check(self, context: WorkflowContext, scope: RunScope) -> list[GeneratedCard]:
        cards: list[GeneratedCard] = context.results[Stage.GENERATE]
        pairs = []
        for card in cards:
            scope.cancellation.raise_if_cancelled(Stage.QUALITY_CHECK.value)
            verdict = await self._judge(card, context, scope)
            logger.debug(
                f"  Q: {card.front} -> score {verdict.quality_score}, worthwhile={verdict.is_worthwhile}"
            )
            pairs.append((card, verdict))

        survivors = [
            card.model_copy(update={"quality_score": verdict.quality_score})
            for card, verdict in filter_cards(pairs, self.settings.quality_threshold)
        ]
        logger.info(f"Quality check: {len(survivors)}/{len(cards)} cards kept")
        return survivors

    def _quality_fallback(self, context: WorkflowContext) -> list[GeneratedCard]:
        verdict = fallback_verdict()
        return [
            card.model_copy(update={"quality_score": verdict.quality_score})
            for card in context.results[Stage.GENERATE]
        ]

    async def _validate(self, context: WorkflowContext, scope: RunScope) -> ValidationResult:
        survivors: list[GeneratedCard] = context.results[Stage.QUALITY_CHECK]
        if not survivors:
            logger.warning("No cards passed the quality check, skipping validation")
            return ValidationResult(
                is_valid=False,
                overall_score=0,
                final_recommendation="No cards passed the quality check",
            )
        decision: SupervisorDecision = context.results[Stage.PLAN]
        result = await self._ask(
            "validator",
            build_validator_prompt(survivors, context.original_text, decision.instruction_for("validate")),
            ValidationResult,
            scope,
            "Validating card set",
        )
        logger.info(f"Validation: score {result.overall_score}, {result.final_recommendation}")
        return result

    # -- driver --------------------------------------------------------------

    async def _run_stage(self, stage: Stage, context: WorkflowContext, scope: RunScope) -> Any:
        spec = self._stages[stage]
        try:
            return await spec.handler(context, scope)
        except PipelineCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Stage '{stage.value}' failed ({type(e).__name__}: {e}). Using fallback")
            return spec.fallback(context)

    def _to_cards(self, cards: list[GeneratedCard], text: str) -> list[Card]:
        created_at = datetime.now()
        return [
            Card(
                id=f"ai_agent_{int(created_at.timestamp() * 1000)}_{index}_{uuid.uuid4().hex[:9]}",
                mode=DEFAULT_CARD_MODE,
                front=card.front,
                back=card.back,
                source_text=text,
                created_at=created_at,
                export_status="not_exported",
                tags=card.tags,
                difficulty=card.difficulty,
                concept=card.concept,
                quality_score=card.quality_score,
            )
            for index, card in enumerate(cards)
        ]

    async def create_cards_from_text(
        self,
        text: str,
        cancellation: CancellationToken | None = None,
        tracker: ApiRequestTracker | None = None,
    ) -> list[Card]:
        """
        Run the whole workflow over `text` and return finished cards.

        Raises PipelineCancelledError if `cancellation` fires; no partial
        result is returned in that case.
        """
        cancellation = cancellation or CancellationToken()
        cancellation.raise_if_cancelled(Stage.PLAN.value)
        scope = RunScope(cancellation=cancellation, tracker=tracker or ApiRequestTracker(self.on_progress))

        cached = self._get_cached(text)
        if cached is not None:
            logger.info("Cache hit: returning cached cards")
            return self._to_cards(cached, text)

        context = new_context(text)
        logger.info(
            f"Starting multi-agent workflow ({context.metadata.text_length} chars, "
            f"{context.metadata.detected_language}, {context.metadata.complexity})"
        )

        try:
            for stage in PIPELINE:
                cancellation.raise_if_cancelled(stage.value)
                context.current_stage = stage
                context.record(stage, await self._run_stage(stage, context, scope))
                cancellation.raise_if_cancelled(stage.value)
        except PipelineCancelledError:
            context.current_stage = Stage.CANCELLED
            logger.info(f"Workflow cancelled, discarding {len(context.results)} stage results")
            raise
        except Exception:
            context.current_stage = Stage.FAILED
            logger.exception("Workflow failed outside of any stage fallback")
            raise

        context.current_stage = Stage.DONE
        validation: ValidationResult = context.results[Stage.VALIDATE]
        final = drop_blank_cards(validation.improved_cards or []) or context.results[Stage.QUALITY_CHECK]

        self._set_cached(text, final)
        progress = scope.tracker.get_current_progress()
        logger.info(f"Workflow complete: {len(final)} cards ({progress.total} requests)")
        return self._to_cards(final, text)
