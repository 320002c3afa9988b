from __future__ import annotations

import base64
import logging
import time
from typing import Any

import httpx

from spendlens.core.config import Settings
from spendlens.core.credentials import OPENAI_API_KEY, CredentialStore
from spendlens.core.errors import (
    ModelRejectionError,
    PreconditionError,
    TransportError,
    UnparseableResponseError,
)
from spendlens.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)


class ModelClient:
    """Sends one prompt (optionally with an image) and returns the raw text reply."""

    def call(self, prompt: str, image: bytes | None = None) -> str:
        raise NotImplementedError


def _image_mime_type(image: bytes) -> str:
    if image.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(image) >= 12 and image.startswith(b"RIFF") and image[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


def _image_data_url(image: bytes) -> str:
    encoded = base64.b64encode(image).decode("ascii")
    return f"data:{_image_mime_type(image)};base64,{encoded}"


class OpenAIChatClient(ModelClient):
    def __init__(
        self,
        *,
        credentials: CredentialStore,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        max_tokens: int = 1000,
        temperature: float = 0.1,
        timeout_seconds: float = 60.0,
        system_prompt: str | None = None,
        credential_name: str = OPENAI_API_KEY,
    ) -> None:
        self.credentials = credentials
        self.base_url = base_url
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.system_prompt = system_prompt
        self.credential_name = credential_name

    @classmethod
    def from_settings(
        cls,
        s: Settings,
        *,
        credentials: CredentialStore,
        max_tokens: int,
        system_prompt: str | None = None,
    ) -> OpenAIChatClient:
        return cls(
            credentials=credentials,
            base_url=s.openai_base_url,
            model=s.openai_model,
            max_tokens=max_tokens,
            temperature=s.model_temperature,
            timeout_seconds=s.model_timeout_seconds,
            system_prompt=system_prompt,
        )

    def _payload(self, prompt: str, image: bytes | None) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        if image is None:
            messages.append({"role": "user", "content": prompt})
        else:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": _image_data_url(image)}},
                    ],
                }
            )
        return {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def call(self, prompt: str, image: bytes | None = None) -> str:
        api_key = (self.credentials.get(self.credential_name) or "").strip()
        if not api_key:
            raise PreconditionError("OpenAI API key is not configured")

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        url = self.base_url.rstrip("/") + "/chat/completions"
        start = time.monotonic()
        log_event(
            logger,
            "model.request.start",
            model=self.model,
            max_tokens=self.max_tokens,
            has_image=image is not None,
            prompt_chars=len(prompt),
        )
        try:
            resp = httpx.post(
                url,
                headers=headers,
                json=self._payload(prompt, image),
                timeout=float(self.timeout_seconds or 60.0),
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            log_event(
                logger,
                "model.request.timeout",
                level=logging.WARNING,
                duration_ms=monotonic_ms(start),
            )
            raise TransportError("Model request timed out") from e
        except httpx.TransportError as e:
            log_event(
                logger,
                "model.request.transport_error",
                level=logging.WARNING,
                error=str(e)[:200],
                duration_ms=monotonic_ms(start),
            )
            raise TransportError(f"Model request failed: {e}") from e

        if resp.status_code != 200:
            log_event(
                logger,
                "model.request.rejected",
                level=logging.WARNING,
                status_code=resp.status_code,
                body=resp.text[:500],
                duration_ms=monotonic_ms(start),
            )
            if resp.status_code == 401:
                raise ModelRejectionError(401, "OpenAI rejected the API key")
            raise ModelRejectionError(resp.status_code)

        try:
            raw = resp.json()
            choice = raw["choices"][0]
            content = choice["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UnparseableResponseError("Model reply has no message content") from e
        if not isinstance(content, str) or not content.strip():
            raise UnparseableResponseError("Model reply has no message content")

        finish_reason = choice.get("finish_reason")
        if finish_reason == "length":
            log_event(
                logger,
                "model.response.truncated",
                level=logging.WARNING,
                max_tokens=self.max_tokens,
            )
        usage = raw.get("usage") if isinstance(raw, dict) else None
        log_event(
            logger,
            "model.request.finish",
            model=self.model,
            finish_reason=finish_reason,
            total_tokens=(usage or {}).get("total_tokens"),
            duration_ms=monotonic_ms(start),
        )
        return content
