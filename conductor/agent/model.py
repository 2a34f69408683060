"""Language-model access for background agent runs."""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import anthropic

from conductor.config import AnthropicSettings

logger = logging.getLogger(__name__)

AGENT_SYSTEM = """You are a background assistant working through a scheduled task for one user.
Use the context provided with the task. Answer briefly in plain text.

If the task calls for changes (tasks, goals, calendar events, reminders, email), you may propose them
by appending a single block of the form:

<actions>[{"type": "createTodoTask", "title": "...", "requiresUserApproval": true, "payload": {"title": "..."}}]</actions>

Valid types: createTodoTask, updateTodoTask, deleteTodoTask, createCalendarEvent, createReminder,
completeReminder, createGoal, completeGoal, updateGoal, sendEmail, webTask.
Payload values are strings. Set requiresUserApproval to false only for routine, reversible changes."""


@dataclass
class ModelResponse:
    text: str
    cost_usd: float = 0.0


class ModelClient(Protocol):
    async def run(self, prompt: str, model: str) -> ModelResponse: ...


class AnthropicModelClient:
    """Runs every prompt as a fresh single-turn conversation."""

    def __init__(self, settings: AnthropicSettings, client: Optional[anthropic.AsyncAnthropic] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        # Created on first use; the API key is only needed once a run starts
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.settings.api_key or None)
        return self._client

    async def run(self, prompt: str, model: str) -> ModelResponse:
        response = await self.client.messages.create(
            model=model,
            max_tokens=self.settings.max_tokens,
            system=AGENT_SYSTEM,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
        cost_usd = (
            response.usage.input_tokens * self.settings.input_cost_per_mtok
            + response.usage.output_tokens * self.settings.output_cost_per_mtok
        ) / 1_000_000
        logger.debug(
            "Model %s: %d in / %d out tokens (cost: $%.4f)",
            model,
            response.usage.input_tokens,
            response.usage.output_tokens,
            cost_usd,
        )
        return ModelResponse(text=text, cost_usd=cost_usd)
