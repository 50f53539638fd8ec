"""AI provider gateway: priority-ordered fallback across providers with cooldowns."""

import time
from typing import Callable, Sequence

from opentelemetry.trace import Status, StatusCode

from conversation_engine.ai.providers import TextProvider, build_providers
from conversation_engine.config import EngineConfig
from conversation_engine.errors import (
    NoProviderConfigured,
    ProviderError,
    ProviderRateLimited,
    ProviderUnavailable,
)
from conversation_engine.utils.logger import get_logger
from conversation_engine.utils.tracing import get_tracer

logger = get_logger("conversation_engine.ai.gateway")


class AIGateway:
    """Uniform ``generate(prompt)`` over an ordered list of providers.

    Providers are tried in the order given. A provider that is unavailable or
    rate limited is put on cooldown and skipped until it expires; if every
    provider is cooling down they are all tried anyway. Only ``ProviderError``
    subclasses leave this class, plus ``NoProviderConfigured`` when the list is empty.
    """

    def __init__(
        self,
        providers: Sequence[TextProvider],
        cooldown_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._providers = list(providers)
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._cooldown_until: dict[str, float] = {}

    @classmethod
    def from_config(cls, config: EngineConfig, system_prompt: str = "") -> "AIGateway":
        return cls(
            build_providers(config, system_prompt=system_prompt),
            cooldown_seconds=config.provider_cooldown_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._providers)

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    def _is_cooling_down(self, provider: TextProvider) -> bool:
        until = self._cooldown_until.get(provider.name)
        return until is not None and self._clock() < until

    def active_providers(self) -> list[TextProvider]:
        """Providers eligible right now, in priority order."""
        ready = [p for p in self._providers if not self._is_cooling_down(p)]
        return ready or list(self._providers)

    async def generate(self, prompt: str) -> str:
        if not self._providers:
            raise NoProviderConfigured()
        tracer = get_tracer()
        last_error: ProviderError | None = None
        for provider in self.active_providers():
            with tracer.start_as_current_span(
                "gateway.generate",
                attributes={"ai.provider": provider.name, "ai.prompt_chars": len(prompt)},
            ) as span:
                try:
                    text = await provider.generate(prompt)
                except ProviderError as e:
                    last_error = e
                except Exception as e:
                    last_error = ProviderUnavailable(f"{provider.name}: {e}", provider=provider.name)
                else:
                    self._cooldown_until.pop(provider.name, None)
                    return text
                span.set_status(Status(StatusCode.ERROR, last_error.kind))
            if isinstance(last_error, (ProviderUnavailable, ProviderRateLimited)):
                self._cooldown_until[provider.name] = self._clock() + self._cooldown_seconds
            logger.warning(
                "gateway.provider_failed",
                provider=provider.name,
                error_kind=last_error.kind,
                error=str(last_error),
            )
        raise last_error
