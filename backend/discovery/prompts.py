"""
User prompts for capability grants and radio enablement.

On a desktop host these are decisions only the user can make, so each
request is surfaced to the frontend and parked on a Future until the
user answers through the API.
"""

import asyncio
import logging
import uuid
from enum import Enum

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class PromptKind(str, Enum):
    PERMISSION = "permission_request"
    RADIO_ENABLE = "radio_enable_request"


class Prompt(BaseModel):
    """A question waiting for the user."""
    prompt_id: str
    kind: PromptKind
    capabilities: list[str] = []


class PromptNotFound(LookupError):
    """No open prompt with that id."""


class PromptBroker:
    """Tracks open prompts and resolves them with the user's answer."""

    def __init__(self) -> None:
        self._prompts: dict[str, Prompt] = {}
        self._futures: dict[str, asyncio.Future] = {}
        self._event_callbacks: list = []  # async fn(event_type, data)

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    def open_prompts(self) -> list[Prompt]:
        return list(self._prompts.values())

    async def ask(self, kind: PromptKind, capabilities: list[str] | None = None):
        """
        Publish a prompt and wait for the answer.

        There is no timeout: the wait lasts until the user responds or the
        awaiting task is cancelled.
        """
        prompt = Prompt(
            prompt_id=str(uuid.uuid4()),
            kind=kind,
            capabilities=capabilities or [],
        )
        future = asyncio.get_running_loop().create_future()
        self._prompts[prompt.prompt_id] = prompt
        self._futures[prompt.prompt_id] = future

        await self._emit(kind.value, prompt.model_dump(mode="json"))
        try:
            return await future
        finally:
            self._prompts.pop(prompt.prompt_id, None)
            self._futures.pop(prompt.prompt_id, None)

    def respond(self, prompt_id: str, answer) -> Prompt:
        """Resolve an open prompt."""
        future = self._futures.get(prompt_id)
        if future is None or future.done():
            raise PromptNotFound(prompt_id)
        prompt = self._prompts[prompt_id]
        future.set_result(answer)
        logger.info(f"Prompt {prompt.kind.value} answered")
        return prompt


class PromptPermissionBroker:
    """Permission subsystem backed by user prompts. Remembers what was granted."""

    def __init__(self, prompts: PromptBroker, pregranted=()) -> None:
        self._prompts = prompts
        self._granted: set[str] = {name.upper() for name in pregranted}

    def check(self, name: str) -> bool:
        return name.upper() in self._granted

    def revoke(self, name: str) -> None:
        self._granted.discard(name.upper())

    async def request(self, names: list[str]) -> set[str]:
        answer = await self._prompts.ask(PromptKind.PERMISSION, names)
        granted = {name for name in names if name.upper() in {a.upper() for a in answer}}
        self._granted |= {name.upper() for name in granted}
        if len(granted) < len(names):
            logger.info(f"User denied: {', '.join(sorted(set(names) - granted))}")
        return granted
