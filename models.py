"""Pydantic models for flashcard pipeline data structures."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


Complexity = Literal["simple", "medium", "advanced"]
Importance = Literal["high", "medium", "low"]
Difficulty = Literal["easy", "medium", "hard"]
ValidatorKind = Literal["morphology", "syntax", "semantics", "consistency", "completeness"]
RequestStatus = Literal["pending", "in-progress", "completed", "error"]
ImageMode = Literal["off", "smart", "always"]


class AgentModel(BaseModel):
    """Base for payloads exchanged with the agents (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Stage(str, Enum):
    """Workflow stages, including the terminal states."""
    INIT = "init"
    PLAN = "plan"
    ANALYZE = "analyze"
    GENERATE = "generate"
    QUALITY_CHECK = "quality_check"
    VALIDATE = "validate"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ChatResponse(BaseModel):
    """What the text-generation capability hands back."""
    content: str


class ContextMetadata(AgentModel):
    text_length: int
    detected_language: str
    topic: str = ""
    complexity: Complexity = "medium"


class WorkflowContext(BaseModel):
    """State of one pipeline run. Results are append-only."""
    original_text: str
    current_stage: Stage = Stage.INIT
    results: dict[Stage, Any] = Field(default_factory=dict)
    metadata: ContextMetadata

    def record(self, stage: Stage, result: Any) -> None:
        if stage in self.results:
            raise ValueError(f"Result for stage '{stage.value}' already recorded")
        self.results[stage] = result


class SupervisorDecision(AgentModel):
    strategy: Literal["single_concept", "multiple_concepts", "step_by_step", "comparison"]
    stages: list[str]
    instructions: dict[str, str] = Field(default_factory=dict)
    expected_output: str = ""
    reasoning: str = ""

    def instruction_for(self, stage: str) -> str:
        return self.instructions.get(stage, "")


class ConceptInfo(AgentModel):
    name: str
    definition: str
    importance: Importance = "medium"
    prerequisites: list[str] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)


class ConceptRelationship(AgentModel):
    source: str = Field(alias="from")
    target: str = Field(alias="to")
    type: Literal["depends_on", "part_of", "related_to", "contradicts"]


class ContentAnalysis(AgentModel):
    main_topic: str
    key_points: list[str] = Field(default_factory=list)
    concepts: list[ConceptInfo] = Field(default_factory=list)
    relationships: list[ConceptRelationship] = Field(default_factory=list)
    learning_objectives: list[str] = Field(default_factory=list)
    complexity: Complexity = "medium"
    estimated_card_count: int = 1


class GeneratedCard(AgentModel):
    """Single flashcard as produced by the card generator."""
    front: str
    back: str
    tags: Optional[list[str]] = None
    difficulty: Difficulty = "medium"
    concept: Optional[str] = None
    quality_score: Optional[float] = None

    @field_validator("front", "back")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()

    @property
    def is_blank(self) -> bool:
        return not self.front or not self.back


class GeneratedCardSet(AgentModel):
    """Collection of generated flashcards."""
    cards: list[GeneratedCard]


class QualityVerdict(AgentModel):
    """Question quality agent's judgement of a single card."""
    quality_score: float = Field(ge=0, le=10)
    relevance_score: float = Field(default=0, ge=0, le=10)
    difficulty_score: float = Field(default=0, ge=0, le=10)
    issues: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    is_worthwhile: bool
    reasoning: str = ""


class ValidationResult(AgentModel):
    """Final validator's verdict over the surviving card set."""
    is_valid: bool
    overall_score: float = Field(ge=0, le=100)
    card_scores: dict[int, float] = Field(default_factory=dict)
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    improved_cards: Optional[list[GeneratedCard]] = None
    final_recommendation: str = ""


class DetailedValidationResult(AgentModel):
    """One specialist validator's verdict."""
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    corrections: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=1)
    validator_kind: ValidatorKind


class MultiValidationResult(BaseModel):
    """Aggregated verdict of the whole validator panel."""
    overall_valid: bool
    average_confidence: float
    results: list[DetailedValidationResult]
    final_errors: list[str]
    final_corrections: list[str]
    attempt_count: int = 1


class ComponentError(BaseModel):
    component: str
    error_message: str


class CardComponents(BaseModel):
    """Raw components of one card built by the parallel assembler."""
    translation: Optional[str] = None
    examples: Optional[list[str]] = None
    front: Optional[str] = None
    linguistic_notes: Optional[str] = None
    notes_validation: Optional[MultiValidationResult] = None
    image_url: Optional[str] = None
    image_reason: Optional[str] = None
    errors: list[ComponentError] = Field(default_factory=list)


class ImageDecision(BaseModel):
    should_generate: bool
    reason: str


class Card(BaseModel):
    """Finished card handed to storage/export."""
    id: str
    mode: str
    front: str
    back: str
    source_text: str
    created_at: datetime
    export_status: Literal["not_exported", "exported"] = "not_exported"
    tags: Optional[list[str]] = None
    difficulty: Optional[Difficulty] = None
    concept: Optional[str] = None
    quality_score: Optional[float] = None


class ApiRequestRecord(BaseModel):
    id: str
    operation: str
    description: str
    start_time: float
    end_time: Optional[float] = None
    status: RequestStatus = "pending"


class ProgressUpdate(BaseModel):
    completed: int
    total: int
    current_request: Optional[ApiRequestRecord] = None
    progress: float
    message: str
