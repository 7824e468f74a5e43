"""Scripted capability used across the test suite."""

import json

from agents import AGENTS
from errors import TransientCallError
from models import ChatResponse

AGENT_BY_PROMPT = {agent.system_prompt: agent.name for agent in AGENTS.values()}


class FakeClient:
    """
    Scripted stand-in for TextGenerationClient.

    `responses` maps an agent name to what it answers: a string, a dict
    (sent as JSON), None, an exception to raise, a callable taking the
    messages, or a list of those consumed one per call (the last entry
    repeats). Agents without a script fail with TransientCallError.
    """

    def __init__(self, responses=None, image_url="https://images.example/card.png"):
        self.responses = dict(responses or {})
        self.image_url = image_url
        self.calls: list[str] = []
        self.image_calls: list[str] = []

    def count(self, agent_name: str) -> int:
        return self.calls.count(agent_name)

    async def generate(self, messages, model=None):
        agent_name = AGENT_BY_PROMPT[messages[0]["content"]]
        self.calls.append(agent_name)

        if agent_name not in self.responses:
            raise TransientCallError(f"No scripted answer for {agent_name}")

        script = self.responses[agent_name]
        if isinstance(script, list):
            result = script.pop(0) if len(script) > 1 else script[0]
        else:
            result = script
        if callable(result):
            result = result(messages)

        if isinstance(result, Exception):
            raise result
        if result is None:
            return None
        if not isinstance(result, str):
            result = json.dumps(result)
        return ChatResponse(content=result)

    async def describe_and_generate_image(self, text, instructions=""):
        self.image_calls.append(text)
        if isinstance(self.image_url, Exception):
            raise self.image_url
        return self.image_url
