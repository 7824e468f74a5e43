"""Agent roles, prompt building and response parsing shared by every stage."""

from dataclasses import dataclass
import json
import logging
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from errors import MalformedResponseError
from models import ChatResponse, ContentAnalysis, ContextMetadata, GeneratedCard
from retry import invoke_with_retry

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Agent:
    """A named role played by the text-generation capability."""
    name: str
    role: str
    system_prompt: str

    def messages(self, user_content: str) -> list[dict]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": user_content},
        ]


def _agent(name: str, role: str, system_prompt: str) -> Agent:
    return Agent(name=name, role=role, system_prompt=f"You are the {role} agent. {system_prompt}")


AGENTS: dict[str, Agent] = {
    agent.name: agent
    for agent in [
        # Multi-agent workflow
        _agent("supervisor", "Supervisor",
               "You plan how a text should be turned into flashcards and instruct the other agents. Reply with JSON only."),
        _agent("content_analyzer", "Content Analyzer",
               "You extract the topic, concepts, relationships and learning objectives from a text. Reply with JSON only."),
        _agent("card_generator", "Card Generator",
               "You write flashcards that test understanding rather than memory. Reply with JSON only."),
        _agent("question_quality", "Question Quality",
               "You strictly grade a single flashcard for educational value. Reply with JSON only."),
        _agent("validator", "Validator",
               "You run a quick final check over a set of flashcards. Reply with JSON only."),
        # Card components
        _agent("translator", "Translator",
               "You translate words and short phrases. Output only the translation."),
        _agent("example_writer", "Example Writer",
               "You write short natural example sentences for a word or phrase."),
        _agent("front_writer", "Card Front",
               "You write the front side of a vocabulary flashcard."),
        _agent("linguist", "Linguist",
               "You write concise grammar and usage notes for a word or phrase."),
        _agent("linguistic_corrector", "Linguistic Corrector",
               "You fix grammar notes according to reviewer feedback. Output only the corrected notes."),
        _agent("image_classifier", "Image Classifier",
               "You decide whether a picture would help someone learn a word."),
        # Validator panel
        _agent("morphology_validator", "Morphology Validator",
               "You check word forms, inflection and part of speech only. Reply with JSON only."),
        _agent("syntax_validator", "Syntax Validator",
               "You check sentence structure and word order only. Reply with JSON only."),
        _agent("semantics_validator", "Semantics Validator",
               "You check meaning and translation accuracy only. Reply with JSON only."),
        _agent("consistency_validator", "Consistency Validator",
               "You check that the content does not contradict itself only. Reply with JSON only."),
        _agent("completeness_validator", "Completeness Validator",
               "You check that nothing essential is missing only. Reply with JSON only."),
    ]
}


def extract_json_object(content: str, agent_name: str = "agent") -> dict:
    """
    Parse the first balanced {...} block found in free text.

    Raises MalformedResponseError when there is no such block or it is not
    valid JSON. Truncated output is not repaired.
    """
    start = content.find("{")
    if start == -1:
        raise MalformedResponseError(f"No JSON found in {agent_name} response", agent_name, content)

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(content)):
        char = content[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                try:
                    data = json.loads(content[start:index + 1])
                except json.JSONDecodeError as e:
                    raise MalformedResponseError(
                        f"Invalid JSON in {agent_name} response: {e}", agent_name, content
                    ) from e
                return data

    raise MalformedResponseError(f"Unbalanced JSON in {agent_name} response", agent_name, content)


def parse_agent_response(agent_name: str, response: ChatResponse | None, model_cls: type[M]) -> M:
    """Turn a raw capability answer into a validated model."""
    if response is None or not response.content.strip():
        raise MalformedResponseError(f"No response from {agent_name} agent", agent_name)
    data = extract_json_object(response.content, agent_name)
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"Unexpected {agent_name} response shape: {e.error_count()} validation errors",
            agent_name,
            response.content,
        ) from e


async def ask_agent(
    client,
    agent_name: str,
    user_content: str,
    max_retries: int = 2,
    base_delay_ms: int = 1000,
    tracker=None,
    description: str = "",
    cancellation=None,
) -> ChatResponse | None:
    """Send one prompt to an agent with retry, optionally recording it in a tracker.

    A fired `cancellation` token stops any further attempt.
    """
    agent = AGENTS[agent_name]
    messages = agent.messages(user_content)

    async def call():
        return await invoke_with_retry(
            lambda: client.generate(messages),
            max_retries=max_retries,
            base_delay_ms=base_delay_ms,
            operation=agent_name,
            cancellation=cancellation,
        )

    if tracker is None:
        return await call()
    async with tracker.track(agent_name, description or agent.role):
        return await call()


# =============================================================================
# Workflow prompts
# =============================================================================


def build_supervisor_prompt(text: str, metadata: ContextMetadata) -> str:
    return f"""Analyze the text and choose the best strategy for turning it into flashcards.

TEXT: "{text}"

CONTEXT:
- Length: {metadata.text_length} characters
- Complexity: {metadata.complexity}
- Language: {metadata.detected_language}

STRATEGIES:
- single_concept: one key concept
- multiple_concepts: several independent concepts
- step_by_step: a process or algorithm
- comparison: a comparison or contrast

Give each following stage a clear instruction.

JSON response:
{{
  "strategy": "step_by_step",
  "stages": ["analyze", "generate", "quality_check", "validate"],
  "instructions": {{
    "analyze": "Identify the main steps and their order",
    "generate": "Write one card per step with a focus on application",
    "quality_check": "Check that each question helps understand the sequence",
    "validate": "Make sure the cards form a logical learning sequence"
  }},
  "expectedOutput": "Cards covering the step-by-step process",
  "reasoning": "The text describes a procedure"
}}"""


def build_analyzer_prompt(text: str, instruction: str) -> str:
    return f"""Analyze the selected text for flashcard creation.

TEXT: "{text}"

INSTRUCTIONS: {instruction or 'Identify the key concepts in the text'}

JSON response:
{{
  "mainTopic": "Topic",
  "keyPoints": ["point"],
  "concepts": [
    {{"name": "Concept", "definition": "Definition", "importance": "high",
      "prerequisites": [], "examples": []}}
  ],
  "relationships": [{{"from": "Concept A", "to": "Concept B", "type": "depends_on"}}],
  "learningObjectives": ["objective"],
  "complexity": "medium",
  "estimatedCardCount": 3
}}"""


def build_generator_prompt(text: str, analysis: ContentAnalysis, instruction: str) -> str:
    concept_names = ", ".join(c.name for c in analysis.concepts) or "Main concepts"
    objectives = ", ".join(analysis.learning_objectives) or "Understand the material"
    return f"""Create high-quality educational flashcards.

TEXT: "{text}"

CONTENT ANALYSIS:
- Topic: {analysis.main_topic}
- Key concepts: {concept_names}
- Learning objectives: {objectives}
- Complexity: {analysis.complexity}
- Suggested number of cards: {analysis.estimated_card_count}

INSTRUCTIONS: {instruction or 'Create quality educational flashcards'}

QUALITY REQUIREMENTS:
1. Never repeat the question's key words in the answer
2. Questions test understanding, not recall
3. Answers are informative and add context
4. One concept per card

JSON response:
{{
  "cards": [
    {{"front": "Question", "back": "Answer", "tags": ["tag"],
      "difficulty": "medium", "concept": "Concept name"}}
  ]
}}"""


def build_quality_prompt(card: GeneratedCard, original_text: str, instruction: str = "") -> str:
    return f"""Strictly grade this flashcard.

CARD:
Question: "{card.front}"
Answer: "{card.back}"
Concept: {card.concept or 'not specified'}

ORIGINAL TEXT: "{original_text[:500]}"

{instruction}

SCALE: 9-10 excellent, 7-8 good, 5-6 mediocre, 3-4 poor, 1-2 useless.
Set isWorthwhile to false if the answer restates the question, the card has
no educational value, or the quality is below 6.

JSON response:
{{
  "qualityScore": 8,
  "relevanceScore": 8,
  "difficultyScore": 5,
  "issues": [],
  "improvements": [],
  "isWorthwhile": true,
  "reasoning": "Why"
}}"""


def build_validator_prompt(cards: list[GeneratedCard], original_text: str, instruction: str = "") -> str:
    card_lines = "\n".join(
        f"{i + 1}. Q: {card.front}\n   A: {card.back}" for i, card in enumerate(cards)
    )
    return f"""Run a quick final check of these flashcards.

ORIGINAL TEXT: "{original_text[:300]}"

CARDS ({len(cards)}):
{card_lines}

{instruction}

RULES:
- If the cards are acceptable (70+), do not suggest improvements
- Only critical problems need fixing; do not rewrite cards otherwise

JSON response:
{{
  "isValid": true,
  "overallScore": 75,
  "cardScores": {{"0": 75}},
  "issues": [],
  "suggestions": [],
  "improvedCards": null,
  "finalRecommendation": "Acceptable quality"
}}"""
