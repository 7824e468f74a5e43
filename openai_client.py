"""OpenAI API interaction: the single text/image generation boundary."""

import logging

import openai
from openai import AsyncOpenAI

from config import DEFAULT_IMAGE_MODEL, DEFAULT_MODEL, get_client
from errors import FatalCallError, TransientCallError
from models import ChatResponse

logger = logging.getLogger(__name__)


def translate_openai_error(error: openai.OpenAIError) -> Exception:
    """Map an OpenAI SDK exception onto the pipeline's error kinds."""
    message = str(error)
    status_code = getattr(error, "status_code", None)

    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return FatalCallError(f"Authentication error. Please check your API key. ({message})", status_code)
    if isinstance(error, openai.RateLimitError):
        if "quota" in message.lower():
            return FatalCallError(f"API quota exceeded: {message}", status_code)
        return TransientCallError(f"Rate limit exceeded: {message}", status_code)
    if isinstance(error, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientCallError(f"Connection problem: {message}")
    if isinstance(error, openai.InternalServerError):
        return TransientCallError(f"Service unavailable: {message}", status_code)
    if isinstance(error, openai.BadRequestError):
        return FatalCallError(f"Bad request. The input may be invalid. ({message})", status_code)
    if isinstance(error, openai.APIStatusError):
        if status_code is not None and status_code >= 500:
            return TransientCallError(f"Error code {status_code}: {message}", status_code)
        return FatalCallError(f"Error code {status_code}: {message}", status_code)
    return TransientCallError(message)


class TextGenerationClient:
    """
    Thin async wrapper around the OpenAI chat and image endpoints.

    `generate` returns None when the model produced no content and raises
    TransientCallError/FatalCallError on transport or auth failures.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str = DEFAULT_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
    ):
        self.client = client or get_client()
        self.model = model
        self.image_model = image_model

    async def generate(self, messages: list[dict], model: str | None = None) -> ChatResponse | None:
        """Send chat messages and return the first choice's text."""
        try:
            response = await self.client.chat.completions.create(
                model=model or self.model,
                messages=messages,
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        if not response.choices:
            return None
        content = response.choices[0].message.content
        if not content or not content.strip():
            return None
        return ChatResponse(content=content)

    async def describe_and_generate_image(self, text: str, instructions: str = "") -> str | None:
        """Write a short visual description of `text`, then render it."""
        prompt = f"""Create a short visual description of the word/concept "{text}" for image generation.
The description should be concrete, visual, and focus on representational elements.
Keep the description under 50 words and make sure it is purely descriptive without any formatting."""
        if instructions:
            prompt = f"{prompt} {instructions}"

        description = await self.generate([{"role": "user", "content": prompt}])
        if description is None:
            return None
        logger.debug(f"Image description for '{text[:30]}': {description.content}")

        try:
            image = await self.client.images.generate(
                model=self.image_model,
                prompt=description.content.strip(),
                n=1,
                size="1024x1024",
            )
        except openai.OpenAIError as e:
            raise translate_openai_error(e) from e

        if not image.data:
            return None
        return image.data[0].url
