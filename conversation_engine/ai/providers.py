"""Text-generation providers behind the gateway, built on Pydantic AI agents.

Each provider exposes ``generate(prompt) -> str`` and translates every transport
or SDK failure into the closed ``ProviderError`` family.
"""

import asyncio
from typing import Any, Callable, Protocol

from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior, UserError
from pydantic_ai.models import Model

from conversation_engine.config import EngineConfig
from conversation_engine.errors import (
    ProviderAuthFailed,
    ProviderBadResponse,
    ProviderError,
    ProviderRateLimited,
    ProviderUnavailable,
)
from conversation_engine.utils.logger import get_logger

logger = get_logger("conversation_engine.ai.providers")


class TextProvider(Protocol):
    """One text-generation backend."""

    name: str

    async def generate(self, prompt: str) -> str:
        ...


def error_for_status(status_code: int, provider: str, detail: str = "") -> ProviderError:
    """Map an HTTP status returned by a provider API to the normalized taxonomy."""
    message = f"{provider} returned HTTP {status_code}" + (f": {detail}" if detail else "")
    if status_code in (401, 403):
        return ProviderAuthFailed(message, provider=provider)
    if status_code == 429:
        return ProviderRateLimited(message, provider=provider)
    if status_code == 408 or status_code >= 500:
        return ProviderUnavailable(message, provider=provider)
    return ProviderBadResponse(message, provider=provider)


class PydanticAIProvider:
    """Runs a plain-text Pydantic AI agent with bounded time and normalized errors."""

    name = "pydantic_ai"

    def __init__(
        self,
        model: Model | str,
        system_prompt: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float = 8.0,
    ):
        model_settings: dict[str, Any] = {}
        if temperature is not None:
            model_settings["temperature"] = temperature
        if max_tokens is not None:
            model_settings["max_tokens"] = max_tokens
        self.timeout_seconds = timeout_seconds
        self._agent = Agent(
            model,
            system_prompt=system_prompt or (),
            retries=1,
            defer_model_check=True,
            **({"model_settings": model_settings} if model_settings else {}),
        )

    async def generate(self, prompt: str) -> str:
        log = logger.bind(provider=self.name)
        try:
            result = await asyncio.wait_for(self._agent.run(prompt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            log.warning("provider.timeout", timeout_seconds=self.timeout_seconds)
            raise ProviderUnavailable(
                f"{self.name} timed out after {self.timeout_seconds}s", provider=self.name
            ) from e
        except ModelHTTPError as e:
            log.warning("provider.http_error", status_code=e.status_code)
            raise error_for_status(e.status_code, self.name) from e
        except UserError as e:
            # raised when the model cannot be built, e.g. missing API key
            log.warning("provider.user_error", error=str(e))
            raise ProviderAuthFailed(str(e), provider=self.name) from e
        except UnexpectedModelBehavior as e:
            log.warning("provider.bad_response", error=str(e))
            raise ProviderBadResponse(str(e), provider=self.name) from e
        except ProviderError:
            raise
        except Exception as e:
            # connection errors surface as SDK-specific types; none may leak past this boundary
            log.warning("provider.transport_error", error_type=type(e).__name__, error=str(e))
            raise ProviderUnavailable(f"{self.name}: {type(e).__name__}: {e}", provider=self.name) from e
        text = result.output if isinstance(result.output, str) else str(result.output or "")
        if not text.strip():
            raise ProviderBadResponse(f"{self.name} returned an empty completion", provider=self.name)
        return text.strip()


class OpenAIProvider(PydanticAIProvider):
    name = "openai"

    @classmethod
    def from_config(cls, config: EngineConfig, system_prompt: str = "") -> "OpenAIProvider":
        from pydantic_ai.models.openai import OpenAIChatModel
        from pydantic_ai.providers.openai import OpenAIProvider as OpenAIClientProvider

        model = OpenAIChatModel(
            config.openai_model,
            provider=OpenAIClientProvider(api_key=config.openai_api_key),
        )
        return cls(
            model,
            system_prompt=system_prompt,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout_seconds=config.gateway_timeout_seconds,
        )


class AnthropicProvider(PydanticAIProvider):
    name = "anthropic"

    @classmethod
    def from_config(cls, config: EngineConfig, system_prompt: str = "") -> "AnthropicProvider":
        from pydantic_ai.models.anthropic import AnthropicModel
        from pydantic_ai.providers.anthropic import AnthropicProvider as AnthropicClientProvider

        model = AnthropicModel(
            config.anthropic_model,
            provider=AnthropicClientProvider(api_key=config.anthropic_api_key),
        )
        return cls(
            model,
            system_prompt=system_prompt,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout_seconds=config.gateway_timeout_seconds,
        )


# name -> (has credentials?, factory)
PROVIDER_FACTORIES: dict[str, tuple[Callable[[EngineConfig], bool], Callable[..., TextProvider]]] = {
    "openai": (lambda c: bool(c.openai_api_key.strip()), OpenAIProvider.from_config),
    "anthropic": (lambda c: bool(c.anthropic_api_key.strip()), AnthropicProvider.from_config),
}


def build_providers(config: EngineConfig, system_prompt: str = "") -> list[TextProvider]:
    """Instantiate configured providers in priority order, skipping those without credentials."""
    providers: list[TextProvider] = []
    for name in config.provider_order:
        entry = PROVIDER_FACTORIES.get(name.strip().lower())
        if entry is None:
            logger.warning("providers.unknown", provider=name, known=list(PROVIDER_FACTORIES))
            continue
        has_credentials, factory = entry
        if not has_credentials(config):
            logger.debug("providers.skip_no_credentials", provider=name)
            continue
        providers.append(factory(config, system_prompt=system_prompt))
    logger.info("providers.built", providers=[p.name for p in providers])
    return providers
