"""Claude-powered text generation and the prompt templates it is fed with."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from anthropic import AsyncAnthropic
from anthropic.types import TextBlock

from meeting_copilot.config import Settings

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

SYSTEM_PROMPT = (
    "You are a meeting assistant. You answer questions and write summaries "
    "strictly from the meeting transcript you are given. Be concise and direct."
)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class PromptTemplateError(RuntimeError):
    """A prompt template is missing or was never loaded."""


class PromptCache:
    """Prompt templates read from disk once, then served from memory."""

    TEMPLATES = {
        "qa": "qa_prompt.txt",
        "summary": "summary_prompt.txt",
    }

    def __init__(self, prompts_dir: Path = PROMPTS_DIR) -> None:
        self.prompts_dir = prompts_dir
        self._templates: dict[str, str] = {}

    def load(self) -> None:
        for name, filename in self.TEMPLATES.items():
            path = self.prompts_dir / filename
            try:
                self._templates[name] = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise PromptTemplateError(f"Cannot load prompt template {path}") from exc
        logger.info("Loaded %d prompt templates from %s", len(self._templates), self.prompts_dir)

    def get(self, name: str) -> str:
        try:
            return self._templates[name]
        except KeyError:
            raise PromptTemplateError(f"Prompt template {name!r} not loaded") from None

    def render(self, name: str, **values: str) -> str:
        """Fill ``{{key}}`` placeholders in one pass; unknown keys are left as-is."""
        template = self.get(name)
        return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)


@dataclass(frozen=True)
class GenerationOptions:
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] = ()


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class GenerationResult:
    text: str
    finish_reason: str | None = None
    usage: TokenUsage | None = None
    model: str | None = None


class AnswerModel(Protocol):
    async def generate(
        self, prompt: str, options: GenerationOptions | None = None
    ) -> GenerationResult: ...


class AnthropicAnswerModel:
    """:class:`AnswerModel` backed by the Anthropic Messages API."""

    def __init__(
        self,
        client: AsyncAnthropic,
        model: str,
        max_tokens: int = 1024,
        temperature: float = 0.2,
        system: str = SYSTEM_PROMPT,
    ) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system = system

    @classmethod
    def from_settings(cls, settings: Settings) -> AnthropicAnswerModel:
        return cls(
            AsyncAnthropic(api_key=settings.anthropic_api_key),
            model=settings.llm_model,
            max_tokens=settings.answer_max_tokens,
            temperature=settings.answer_temperature,
        )

    async def generate(
        self, prompt: str, options: GenerationOptions | None = None
    ) -> GenerationResult:
        options = options or GenerationOptions()
        kwargs = {
            "model": options.model or self.model,
            "max_tokens": options.max_tokens or self.max_tokens,
            "temperature": (
                options.temperature if options.temperature is not None else self.temperature
            ),
            "system": self.system,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.stop_sequences:
            kwargs["stop_sequences"] = list(options.stop_sequences)

        response = await self.client.messages.create(**kwargs)

        # Only text is requested, but the content list is a union of block types.
        text = "".join(block.text for block in response.content if isinstance(block, TextBlock))
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        logger.debug(
            "Generated %d chars with %s (%d tokens)", len(text), response.model, usage.total_tokens
        )
        return GenerationResult(
            text=text,
            finish_reason=response.stop_reason,
            usage=usage,
            model=response.model,
        )
