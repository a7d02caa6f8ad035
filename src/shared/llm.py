"""
LLM client abstraction supporting OpenAI and Anthropic.
Provides async text completion; callers validate the returned text themselves.
"""

import math
from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum

from openai import AsyncOpenAI
from anthropic import AsyncAnthropic

from src.shared.config import LLMConfig, settings
from src.shared.exceptions import CoachError


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class LLMError(CoachError):
    """Base error for LLM operations."""
    pass


@dataclass
class TokenUsage:
    """Token counts reported by the provider for one completion."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class LLMReply:
    """Completion text plus usage, when the provider reported it."""
    content: str
    usage: Optional[TokenUsage] = None


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def _field(source: Any, *names: str) -> Optional[float]:
    for name in names:
        raw = source.get(name) if isinstance(source, dict) else getattr(source, name, None)
        value = _finite(raw)
        if value is not None:
            return value
    return None


def normalize_usage(raw: Any) -> Optional[TokenUsage]:
    """
    Normalize provider usage metadata.

    Accepts OpenAI (prompt/completion) and Anthropic (input/output) naming,
    as attributes or dict keys. Non-numeric counts are treated as missing;
    the total defaults to input + output.
    """
    if raw is None:
        return None

    input_tokens = _field(raw, "input_tokens", "prompt_tokens")
    output_tokens = _field(raw, "output_tokens", "completion_tokens")
    total_tokens = _field(raw, "total_tokens")
    if input_tokens is None and output_tokens is None and total_tokens is None:
        return None

    input_tokens = int(input_tokens or 0)
    output_tokens = int(output_tokens or 0)
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=int(total_tokens) if total_tokens is not None else input_tokens + output_tokens,
    )


class LLMClient:
    """Unified LLM client supporting multiple providers."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        config: Optional[LLMConfig] = None,
    ):
        cfg = config or settings.llm
        self.provider = provider or cfg.provider
        self.model = model or cfg.default_model
        self.temperature = temperature if temperature is not None else cfg.temperature
        self.max_tokens = max_tokens or cfg.max_tokens

        # Initialize provider client
        if self.provider == LLMProvider.OPENAI:
            api_key = api_key or cfg.openai_api_key
            if not api_key:
                raise LLMError("OpenAI API key not configured")
            base_url = base_url or cfg.openai_base_url
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        elif self.provider == LLMProvider.ANTHROPIC:
            api_key = api_key or cfg.anthropic_api_key
            if not api_key:
                raise LLMError("Anthropic API key not configured")
            self.client = AsyncAnthropic(api_key=api_key)
        else:
            raise LLMError(f"Unsupported provider: {self.provider}")

    async def get_completion(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> str:
        """
        Get text completion from LLM.

        Args:
            prompt: User prompt
            system_prompt: Optional system prompt
            model: Override default model
            temperature: Override default temperature
            max_tokens: Override default max_tokens
            **kwargs: Additional provider-specific parameters

        Returns:
            Completion text, with no structural guarantee
        """
        reply = await self.complete(
            prompt,
            system_prompt=system_prompt,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )
        return reply.content

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMReply:
        """Like get_completion, but also returns token usage."""
        model = model or self.model
        temperature = temperature if temperature is not None else self.temperature
        max_tokens = max_tokens or self.max_tokens

        try:
            if self.provider == LLMProvider.OPENAI:
                return await self._openai_completion(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs
                )
            return await self._anthropic_completion(
                prompt=prompt,
                system_prompt=system_prompt,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except Exception as e:
            raise LLMError(f"LLM completion failed: {str(e)}") from e

    async def _openai_completion(
        self,
        prompt: str,
        system_prompt: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
        **kwargs
    ) -> LLMReply:
        """OpenAI-specific completion."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        completion_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs
        }

        response = await self.client.chat.completions.create(**completion_kwargs)
        return LLMReply(
            content=response.choices[0].message.content or "",
            usage=normalize_usage(getattr(response, "usage", None)),
        )

    async def _anthropic_completion(
        self,
        prompt: str,
        system_prompt: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
        **kwargs
    ) -> LLMReply:
        """Anthropic-specific completion."""
        # Anthropic uses system parameter, not system message
        completion_kwargs: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
            **kwargs
        }

        if system_prompt:
            completion_kwargs["system"] = system_prompt

        response = await self.client.messages.create(**completion_kwargs)
        content = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        return LLMReply(content=content, usage=normalize_usage(getattr(response, "usage", None)))
