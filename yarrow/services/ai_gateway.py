"""AI Gateway - connection to the reasoning service.

Talks to an OpenAI-compatible ``/chat/completions`` endpoint and supports the
structured JSON response mode the triage engine relies on. One gateway is
built at process start and handed to the conversation engine; it owns a
pooled ``httpx.AsyncClient`` that lives until ``close()``.

Every failure (connection, non-2xx, malformed envelope) is raised as
``ReasoningServiceError``. Deciding what to do about it is the caller's job.
"""

import httpx
import logging
from typing import Optional, List, Dict, Any
from pydantic import BaseModel

from yarrow.config import settings
from yarrow.exceptions import ReasoningServiceError

logger = logging.getLogger(__name__)


class AIGatewayConfig(BaseModel):
    """Configuration for the reasoning service connection."""

    base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = None
    timeout: float = 30.0
    default_model: str = "gpt-4o-mini"
    vision_model: str = "gpt-4o"
    temperature: float = 0.3
    max_tokens: int = 800

    @classmethod
    def from_settings(cls) -> "AIGatewayConfig":
        return cls(
            base_url=settings.OPENAI_BASE_URL,
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.AI_TIMEOUT_SECONDS,
            default_model=settings.OPENAI_MODEL,
            vision_model=settings.OPENAI_VISION_MODEL,
            temperature=settings.AI_TEMPERATURE,
            max_tokens=settings.AI_MAX_TOKENS,
        )


def user_content_with_image(text: str, image_url: str) -> List[Dict[str, Any]]:
    """Multi-part user content carrying an image reference."""
    return [
        {"type": "text", "text": text},
        {"type": "image_url", "image_url": {"url": image_url}},
    ]


class AIGateway:
    """Gateway to the reasoning service."""

    def __init__(
        self,
        config: Optional[AIGatewayConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or AIGatewayConfig.from_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with auth headers."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def health_check(self) -> Dict[str, Any]:
        """Check whether the reasoning service answers."""
        if not self.is_configured:
            return {"status": "unconfigured"}
        try:
            client = await self.get_client()
            response = await client.get("/models")
            return {
                "status": "healthy" if response.status_code == 200 else "error",
                "status_code": response.status_code,
            }
        except httpx.HTTPError as e:
            return {"status": "unavailable", "error": type(e).__name__}

    async def chat_completion(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: Optional[str] = None,
        image_url: Optional[str] = None,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Run one chat completion.

        ``image_url`` is attached to the last user message and switches to the
        vision model. ``json_mode`` asks for a JSON object response.

        Returns:
            Dict with content, usage and model
        """
        if not self.is_configured:
            raise ReasoningServiceError("OPENAI_API_KEY not set")

        messages = list(messages)
        if image_url and messages and messages[-1].get("role") == "user":
            last = messages[-1]
            messages[-1] = {
                "role": "user",
                "content": user_content_with_image(str(last.get("content", "")), image_url),
            }
        if system_prompt:
            messages = [{"role": "system", "content": system_prompt}] + messages

        model = self.config.vision_model if image_url else self.config.default_model
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            client = await self.get_client()
            response = await client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Reasoning service returned %s", e.response.status_code)
            raise ReasoningServiceError(
                f"reasoning service returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Reasoning service unreachable: %s", type(e).__name__)
            raise ReasoningServiceError(f"reasoning service unreachable: {type(e).__name__}") from e
        except ValueError as e:
            raise ReasoningServiceError("reasoning service sent a non-JSON envelope") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ReasoningServiceError("reasoning service response had no message content") from e

        logger.info(
            "Chat completion ok (model=%s, tokens=%s)",
            data.get("model", model),
            (data.get("usage") or {}).get("total_tokens"),
        )
        return {
            "content": content or "",
            "usage": data.get("usage", {}),
            "model": data.get("model", model),
        }
