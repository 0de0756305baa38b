"""
LLM client for routing generation requests to language models

Supports OpenAI, any OpenAI-compatible local server, and a mock client
backed by canned YAML responses.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from .config import LLMConfig, LLMRouterConfig
from .observability.metrics import get_metrics
from .observability.tracer import add_event, set_attribute, trace_async

logger = logging.getLogger(__name__)

DEFAULT_MOCK_RESPONSES = Path(__file__).parent / "prompts" / "mock_responses.yaml"


class LLMResponse(BaseModel):
    """Standardized LLM response format"""

    content: str
    model: str
    provider: str
    tokens_used: Optional[int] = None
    finish_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients"""

    provider_name = "base"

    def __init__(self, config: LLMRouterConfig, router_name: str = "default"):
        self.config = config
        self.router_name = router_name

    @abstractmethod
    async def generate(
        self, prompt: str, system_prompt: Optional[str] = None, **kwargs
    ) -> LLMResponse:
        """Generate response from LLM"""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if LLM is available"""


class BaseOpenAICompatibleClient(BaseLLMClient):
    """Shared chat-completions logic for OpenAI and OpenAI-compatible servers"""

    def __init__(self, config: LLMRouterConfig, router_name: str = "default"):
        super().__init__(config, router_name)
        self._client = None

    @abstractmethod
    def _get_client(self):
        """Lazily build the ``AsyncOpenAI`` client"""

    def _extra_attributes(self) -> dict[str, Any]:
        return {}

    async def generate(
        self, prompt: str, system_prompt: Optional[str] = None, **kwargs
    ) -> LLMResponse:
        kwargs.pop("template_type", None)
        model = kwargs.pop("model", None) or self.config.model

        @trace_async(f"llm.{self.provider_name}.generate")
        async def _generate() -> LLMResponse:
            set_attribute("llm.provider", self.provider_name)
            set_attribute("llm.model", model)
            set_attribute("prompt.length", len(prompt))
            for key, value in self._extra_attributes().items():
                set_attribute(key, value)

            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})

            params = {
                "model": model,
                "messages": messages,
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_tokens,
                **kwargs,
            }

            metrics = get_metrics()
            start_time = time.perf_counter()
            try:
                response = await self._get_client().chat.completions.create(**params)
            except Exception as e:
                logger.error(f"{self.provider_name} generation failed: {e}")
                if metrics:
                    metrics.record_llm_error(
                        self.provider_name, model, self.router_name, type(e).__name__
                    )
                add_event("llm_generation_error", {"error": str(e)})
                raise

            choice = response.choices[0]
            usage = response.usage
            if metrics:
                metrics.record_llm_request(
                    self.provider_name, model, self.router_name, time.perf_counter() - start_time
                )
                if usage:
                    metrics.record_llm_tokens(
                        self.provider_name,
                        model,
                        self.router_name,
                        usage.prompt_tokens or 0,
                        usage.completion_tokens or 0,
                    )

            set_attribute("response.finish_reason", choice.finish_reason or "")
            add_event("llm_generation_complete")
            return LLMResponse(
                content=choice.message.content or "",
                model=response.model,
                provider=self.provider_name,
                tokens_used=usage.total_tokens if usage else None,
                finish_reason=choice.finish_reason,
                metadata={
                    "prompt_tokens": usage.prompt_tokens if usage else None,
                    "completion_tokens": usage.completion_tokens if usage else None,
                },
            )

        return await _generate()

    async def health_check(self) -> bool:
        try:
            await self._get_client().chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=1,
            )
            return True
        except Exception as e:
            logger.error(f"{self.provider_name} health check failed: {e}")
            return False


class OpenAIClient(BaseOpenAICompatibleClient):
    """OpenAI API client"""

    provider_name = "openai"

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.config.api_key, timeout=self.config.timeout)
        return self._client


class LocalLLMClient(BaseOpenAICompatibleClient):
    """
    Client for local OpenAI-compatible inference servers

    e.g. Ollama (http://localhost:11434/v1), LMStudio (http://localhost:1234/v1)
    or vLLM (http://your-server:8000/v1).
    """

    provider_name = "local"

    def _get_client(self):
        if self._client is None:
            if not self.config.base_url:
                raise ValueError(
                    "base_url is required for local LLM provider. "
                    "Example: http://localhost:11434/v1 (Ollama)"
                )
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.config.api_key or "not-needed",
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client

    def _extra_attributes(self) -> dict[str, Any]:
        return {"llm.base_url": self.config.base_url}


class MockLLMClient(BaseLLMClient):
    """Returns canned responses keyed by template type"""

    provider_name = "mock"

    def __init__(self, config: LLMRouterConfig, router_name: str = "default"):
        super().__init__(config, router_name)
        path = Path(config.mock_responses_path) if config.mock_responses_path else DEFAULT_MOCK_RESPONSES
        with open(path, encoding="utf-8") as f:
            self.mock_responses: dict[str, Any] = yaml.safe_load(f) or {}

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        template_type: str = "default",
        **kwargs,
    ) -> LLMResponse:
        response_data = self.mock_responses.get(template_type) or self.mock_responses.get(
            "default", {"content": "Mock LLM response"}
        )
        if isinstance(response_data, dict) and set(response_data) == {"content"}:
            content = str(response_data["content"])
        else:
            content = json.dumps(response_data, indent=2)

        metrics = get_metrics()
        if metrics:
            metrics.record_llm_request(self.provider_name, self.config.model, self.router_name, 0.0)

        return LLMResponse(
            content=content,
            model=f"mock-{self.config.model}",
            provider=self.provider_name,
            tokens_used=len(content.split()),
            finish_reason="stop",
            metadata={"mock": True, "template_type": template_type},
        )

    async def health_check(self) -> bool:
        return True


CLIENT_TYPES: dict[str, type[BaseLLMClient]] = {
    "openai": OpenAIClient,
    "local": LocalLLMClient,
    "mock": MockLLMClient,
}


class LLMRouter:
    """
    Routes LLM requests to the client configured for a router name

    Clients are created on first use and reused afterwards.
    """

    def __init__(self, config: LLMConfig):
        self.config = config
        self._clients: dict[str, BaseLLMClient] = {}

    def _create_client(self, router_name: str, router_config: LLMRouterConfig) -> BaseLLMClient:
        provider = router_config.provider.lower()
        client_type = CLIENT_TYPES.get(provider)
        if client_type is None:
            raise ValueError(
                f"Unknown LLM provider '{provider}' for router '{router_name}'. "
                f"Supported: {', '.join(CLIENT_TYPES)}"
            )
        return client_type(router_config, router_name)

    def get_client(self, router_name: Optional[str] = None) -> BaseLLMClient:
        router_name = router_name or self.config.default
        if router_name not in self._clients:
            if router_name not in self.config.routers:
                raise ValueError(f"LLM router '{router_name}' not found in configuration")
            self._clients[router_name] = self._create_client(
                router_name, self.config.routers[router_name]
            )
        return self._clients[router_name]

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        router_name: Optional[str] = None,
        **kwargs,
    ) -> LLMResponse:
        """Generate a response using the named (or default) router"""
        client = self.get_client(router_name)
        return await client.generate(prompt, system_prompt, **kwargs)

    async def health_check_all(self) -> dict[str, bool]:
        results = {}
        for router_name in self.config.routers:
            try:
                results[router_name] = await self.get_client(router_name).health_check()
            except ValueError as e:
                logger.error(f"Health check failed for router {router_name}: {e}")
                results[router_name] = False
        return results
