"""LLM clients for image descriptions, tag suggestions and TLDR summaries."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import litellm
from loguru import logger

from linkstash.config.llm import LLMConfig
from linkstash.errors import GenerationError

DESCRIBE_IMAGE_PROMPT = (
    "Describe this image in detail. Include the main subjects, any visible text, "
    "the setting, colours and anything notable. Keep it factual and concise."
)

TAG_PROMPT = (
    "Based on the following content and metadata, generate 3-5 relevant tags "
    "(single words or short phrases). Return only the tags, separated by commas."
)

TLDR_PROMPT = (
    "You are a helpful assistant that creates concise summaries. "
    "Summarize the saved {kind} below in under 200 words. Return only the summary."
)

TLDR_CONTEXT_CHARS = 2000

MAX_TAG_LENGTH = 30
MAX_TAGS = 5


class LLMClient(Protocol):
    model: str

    def describe_image(self, image_url: str, *, context: str | None = None) -> str:
        """Return a textual description of the image at ``image_url``."""
        ...

    def suggest_tags(self, *, title: str, description: str | None, content: str | None) -> list[str]:
        """Return up to five short tags for the given content."""
        ...

    def summarize(self, *, kind: str, context: str) -> str:
        """Return a short TLDR of ``context``."""
        ...


def build_client(config: LLMConfig) -> LLMClient:
    """Pick the offline stub for ``stub://`` and localhost endpoints, LiteLLM otherwise."""

    if config.is_stub:
        logger.debug("LLM alias '{}' answers from the offline stub", config.alias)
        return StubLLMClient(config)
    logger.debug("LLM alias '{}' routes {} through LiteLLM", config.alias, config.name)
    return LiteLLMClient(config, api_base=config.base_url.strip() or None)


def parse_tags(raw: str) -> list[str]:
    """Split a comma/newline separated answer into at most five clean, short tags."""

    tags: list[str] = []
    for chunk in re.split(r"[,\n]", raw):
        tag = chunk.strip(" \t-*#•\"'")
        if not tag or len(tag) >= MAX_TAG_LENGTH or tag in tags:
            continue
        tags.append(tag)
        if len(tags) == MAX_TAGS:
            break
    return tags


@dataclass(slots=True)
class LiteLLMClient:
    """Client that delegates calls to LiteLLM."""

    config: LLMConfig
    api_base: str | None
    api_key: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        # env: references resolve once so a missing variable fails at construction
        self.api_key = self.config.api_key_secret

    @property
    def model(self) -> str:
        return self.config.name

    def _complete(self, messages: list[dict[str, Any]]) -> str:
        call_kwargs: dict[str, Any] = {
            "model": self.config.name,
            "messages": messages,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "max_tokens": self.config.max_tokens,
            "api_key": self.api_key,
            "timeout": self.config.timeout,
        }
        if self.api_base:
            call_kwargs["api_base"] = self.api_base
        if self.config.reasoning_effort:
            call_kwargs["reasoning_effort"] = self.config.reasoning_effort

        try:
            response = litellm.completion(**call_kwargs)
        except Exception as exc:  # noqa: BLE001 - litellm raises provider-specific types
            raise GenerationError(f"LLM request to {self.config.alias} failed: {exc}") from exc

        content = extract_content(response)
        if not content:
            raise GenerationError("LLM returned empty response")
        return content

    def describe_image(self, image_url: str, *, context: str | None = None) -> str:
        prompt = DESCRIBE_IMAGE_PROMPT
        if context:
            prompt += f"\n\nContext: {context.strip()[:500]}"
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }
        ]
        return self._complete(messages)

    def suggest_tags(self, *, title: str, description: str | None, content: str | None) -> list[str]:
        user = "\n".join(
            [
                f"Title: {title or 'N/A'}",
                f"Description: {description or 'N/A'}",
                f"Content: {(content or '')[:500]}",
            ]
        )
        messages = [
            {"role": "system", "content": TAG_PROMPT},
            {"role": "user", "content": user},
        ]
        return parse_tags(self._complete(messages))

    def summarize(self, *, kind: str, context: str) -> str:
        messages = [
            {"role": "system", "content": TLDR_PROMPT.format(kind=kind)},
            {"role": "user", "content": context[:TLDR_CONTEXT_CHARS]},
        ]
        return self._complete(messages)


@dataclass(slots=True)
class StubLLMClient:
    """Offline client with deterministic answers built from its inputs."""

    config: LLMConfig

    @property
    def model(self) -> str:
        return self.config.name

    def describe_image(self, image_url: str, *, context: str | None = None) -> str:
        name = image_url.rstrip("/").rsplit("/", 1)[-1] or image_url
        description = f"Image '{name}' described by {self.config.name}."
        if context:
            description += f" Context: {context.strip()[:120]}"
        return description

    def suggest_tags(self, *, title: str, description: str | None, content: str | None) -> list[str]:
        words = re.findall(r"[a-z0-9]{4,}", " ".join(filter(None, [title, description, content])).lower())
        return parse_tags(",".join(words))[:3] or ["saved"]

    def summarize(self, *, kind: str, context: str) -> str:
        first_line = next((line.strip() for line in context.splitlines() if line.strip()), "")
        return f"TLDR ({kind}): {first_line[:160]}" if first_line else f"TLDR ({kind}): nothing to summarize."


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_content(response: Any) -> str:
    """Pull the first choice's message text out of a LiteLLM (or raw dict) response."""

    choices = _field(response, "choices")
    if not choices:
        return ""
    content = _field(_field(choices[0], "message"), "content")
    return "" if content is None else str(content).strip()


__all__ = ["LLMClient", "LiteLLMClient", "StubLLMClient", "build_client", "extract_content", "parse_tags"]
