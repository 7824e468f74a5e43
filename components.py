"""Fast path: build the components of a single card concurrently."""

import asyncio
import logging
import re

from agents import ask_agent
from cancellation import CancellationToken
from config import PipelineSettings
from errors import MalformedResponseError, PipelineCancelledError
from models import CardComponents, ComponentError, ImageDecision, ImageMode, MultiValidationResult

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 3

_PREFIX_PATTERN = re.compile(r"^(translation|translated as|front|word)\s*:\s*", re.IGNORECASE)
_NUMBERED_LINE = re.compile(r"^\s*(?:\d+\s*[.)]|[•\-*])\s*(.+)$")


def clean_single_line(response: str) -> str:
    """First line of a short answer without quotes or 'Translation:' style prefixes."""
    line = next((l for l in response.strip().splitlines() if l.strip()), "")
    line = _PREFIX_PATTERN.sub("", line.strip())
    return line.strip().strip("\"'").strip()


def parse_examples(response: str, limit: int = MAX_EXAMPLES) -> list[str]:
    """Pull numbered or bulleted sentences out of a response, falling back to plain lines."""
    lines = [l for l in response.strip().splitlines() if l.strip()]
    examples = [m.group(1).strip() for m in map(_NUMBERED_LINE.match, lines) if m]
    if not examples:
        examples = [l.strip() for l in lines if not l.rstrip().endswith(":")]
    examples = [re.sub(r"^(example|sentence)\s*:\s*", "", e, flags=re.IGNORECASE).strip("\"'") for e in examples]
    return [e for e in examples if e][:limit]


def parse_image_decision(response: str | None) -> ImageDecision:
    """Read a 'YES - reason' / 'NO - reason' answer."""
    if not response:
        return ImageDecision(should_generate=False, reason="AI analysis failed")
    result = response.strip()
    reason = result.split(" - ", 1)[1].strip() if " - " in result else "AI analysis"
    return ImageDecision(should_generate=result.upper().startswith("YES"), reason=reason)


class ParallelComponentAssembler:
    """
    Launches the independent component tasks of one card at once and joins them.

    A failing task adds an entry to `errors` without disturbing the others.
    If cancellation fires at any point the whole result is discarded.
    """

    def __init__(self, client, settings: PipelineSettings | None = None, tracker=None, validator=None):
        self.client = client
        self.settings = settings or PipelineSettings()
        self.tracker = tracker
        self.validator = validator

    async def _ask(
        self,
        agent_name: str,
        prompt: str,
        description: str,
        retried: bool = False,
        cancellation: CancellationToken | None = None,
    ) -> str:
        response = await ask_agent(
            self.client,
            agent_name,
            prompt,
            max_retries=self.settings.max_retries if retried else 0,
            base_delay_ms=self.settings.retry_base_delay_ms,
            tracker=self.tracker,
            description=description,
            cancellation=cancellation,
        )
        if response is None:
            raise MalformedResponseError(f"No response from {agent_name} agent", agent_name)
        return response.content

    async def translate(
        self,
        text: str,
        target_language: str,
        custom_prompt: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> str:
        prompt = f"""Translate the following text to {target_language}: "{text}".
Output ONLY the direct translation, without explanations, quotes, examples or formatting."""
        if custom_prompt:
            prompt = f"{prompt} {custom_prompt}"
        response = await self._ask(
            "translator", prompt, f"Translating to {target_language}", retried=True, cancellation=cancellation
        )
        translation = clean_single_line(response)
        if not translation:
            raise MalformedResponseError("Empty translation", "translator")
        return translation

    async def generate_examples(
        self, text: str, custom_prompt: str | None = None, cancellation: CancellationToken | None = None
    ) -> list[str]:
        prompt = f"""Give me exactly three example sentences using '{text}'.
Format:
1. [First example sentence]
2. [Second example sentence]
3. [Third example sentence]
Only the numbered sentences, no definitions or translations."""
        if custom_prompt:
            prompt = f"{prompt} {custom_prompt.replace('{word}', text)}"
        examples = parse_examples(
            await self._ask("example_writer", prompt, "Writing example sentences", cancellation=cancellation)
        )
        if not examples:
            raise MalformedResponseError("Could not find example sentences", "example_writer")
        return examples

    async def generate_front(self, text: str, cancellation: CancellationToken | None = None) -> str:
        prompt = f"""For "{text}", provide ONLY the word itself, its part of speech and its IPA pronunciation.
Format: word (part of speech) /pronunciation/
For example: run (verb) /rʌn/"""
        response = await self._ask("front_writer", prompt, "Writing card front", cancellation=cancellation)
        front = clean_single_line(response)
        if not front:
            raise MalformedResponseError("Empty card front", "front_writer")
        return front

    async def generate_linguistic_notes(
        self, text: str, source_language: str, user_language: str, cancellation: CancellationToken | None = None
    ) -> str:
        prompt = f"""Write a short grammar reference for "{text}" ({source_language}) in {user_language}.
Cover part of speech, key forms and typical usage. Plain text, at most 8 lines."""
        response = await self._ask("linguist", prompt, "Writing grammar notes", cancellation=cancellation)
        return response.strip()

    async def correct_linguistic_notes(
        self,
        text: str,
        notes: str,
        verdict: MultiValidationResult,
        source_language: str,
        user_language: str,
        cancellation: CancellationToken | None = None,
    ) -> str:
        problems = "\n".join(f"- {e}" for e in verdict.final_errors) or "- (none listed)"
        fixes = "\n".join(f"- {c}" for c in verdict.final_corrections) or "- (none listed)"
        prompt = f"""Correct this grammar reference for "{text}" ({source_language}), written in {user_language}.

CURRENT NOTES:
{notes}

PROBLEMS FOUND:
{problems}

SUGGESTED CORRECTIONS:
{fixes}

Output only the corrected notes."""
        response = await self._ask(
            "linguistic_corrector", prompt, "Correcting grammar notes", cancellation=cancellation
        )
        return response.strip()

    async def create_validated_linguistic_notes(
        self,
        text: str,
        source_language: str,
        user_language: str,
        cancellation: CancellationToken | None = None,
    ) -> tuple[str, MultiValidationResult]:
        """
        Generate grammar notes and let the validator panel review them.

        While the panel rejects the notes, ask for a corrected version, up to
        `linguistic_max_attempts` reviews. The latest notes are returned even
        if they never pass.
        """
        cancellation = cancellation or CancellationToken()
        max_attempts = max(1, self.settings.linguistic_max_attempts)
        notes = await self.generate_linguistic_notes(text, source_language, user_language, cancellation)

        attempt = 1
        verdict = await self.validator.run_multiple_validation(
            text, notes, source_language, user_language, cancellation, attempt_count=attempt
        )
        while not verdict.overall_valid and attempt < max_attempts:
            logger.info(f"Grammar notes rejected (attempt {attempt}): {', '.join(verdict.final_errors)}")
            notes = await self.correct_linguistic_notes(
                text, notes, verdict, source_language, user_language, cancellation
            )
            attempt += 1
            verdict = await self.validator.run_multiple_validation(
                text, notes, source_language, user_language, cancellation, attempt_count=attempt
            )

        if not verdict.overall_valid:
            logger.warning(f"Grammar notes for '{text[:30]}' still invalid after {attempt} attempts")
        return notes, verdict

    async def classify_for_image(self, text: str, cancellation: CancellationToken | None = None) -> ImageDecision:
        prompt = f"""Would a picture help a language learner remember "{text}"?
Concrete objects, animals, places, foods, tools, people, visible activities = YES
Abstract concepts, emotions, grammar terms, numbers, prepositions = NO
Respond with ONLY "YES" or "NO" followed by a brief reason (max 10 words).
Format: "YES - concrete object that can be visualized" or "NO - abstract concept".
"""
        try:
            response = await self._ask(
                "image_classifier", prompt, "Deciding whether to draw an image", cancellation=cancellation
            )
        except PipelineCancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error analyzing text for image generation: {e}")
            return ImageDecision(should_generate=False, reason="Analysis error")
        return parse_image_decision(response)

    async def generate_image(
        self,
        text: str,
        image_mode: ImageMode,
        instructions: str = "",
        cancellation: CancellationToken | None = None,
    ) -> tuple[str | None, str]:
        cancellation = cancellation or CancellationToken()
        reason = "Image mode is 'always'"
        if image_mode == "smart":
            decision = await self.classify_for_image(text, cancellation)
            logger.info(
                f"Smart image analysis for '{text[:30]}': "
                f"{'YES' if decision.should_generate else 'NO'} - {decision.reason}"
            )
            if not decision.should_generate:
                return None, decision.reason
            reason = decision.reason

        cancellation.raise_if_cancelled("image")
        if self.tracker is not None:
            async with self.tracker.track("generate-image", "Drawing card image"):
                url = await self.client.describe_and_generate_image(text, instructions)
        else:
            url = await self.client.describe_and_generate_image(text, instructions)
        if url is None:
            raise MalformedResponseError("Image generation returned nothing", "image")
        return url, reason

    async def assemble(
        self,
        text: str,
        target_language: str,
        custom_prompt: str | None = None,
        source_language: str | None = None,
        should_generate_image: bool = False,
        image_mode: ImageMode = "off",
        cancellation: CancellationToken | None = None,
        image_instructions: str = "",
    ) -> CardComponents:
        """Build every component of one card concurrently and join the outcomes."""
        cancellation = cancellation or CancellationToken()
        cancellation.raise_if_cancelled("assemble")

        tasks = {
            "translation": self.translate(text, target_language, custom_prompt, cancellation),
            "examples": self.generate_examples(text, custom_prompt, cancellation),
            "front": self.generate_front(text, cancellation),
        }
        if source_language:
            if self.validator is not None:
                tasks["linguistic_notes"] = self.create_validated_linguistic_notes(
                    text, source_language, target_language, cancellation
                )
            else:
                tasks["linguistic_notes"] = self.generate_linguistic_notes(
                    text, source_language, target_language, cancellation
                )
        if should_generate_image and image_mode != "off":
            tasks["image"] = self.generate_image(text, image_mode, image_instructions, cancellation)

        logger.info(f"Assembling card for '{text[:30]}': {', '.join(tasks)}")
        outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)

        # Discard everything, even successful slots, once cancelled
        cancellation.raise_if_cancelled("assemble")

        components = CardComponents()
        for name, outcome in zip(tasks, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Component '{name}' failed: {outcome}")
                components.errors.append(ComponentError(component=name, error_message=str(outcome)))
            elif name == "linguistic_notes" and isinstance(outcome, tuple):
                components.linguistic_notes, components.notes_validation = outcome
            elif name == "image":
                components.image_url, components.image_reason = outcome
            else:
                setattr(components, name, outcome)

        logger.info(f"Card components ready: {len(tasks) - len(components.errors)}/{len(tasks)} succeeded")
        return components
