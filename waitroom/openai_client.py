import asyncio
import json
import logging
import os
from collections.abc import Sequence
from typing import Optional, Union

import httpx
from pydantic import ValidationError

from waitroom.errors import ReasoningServiceError
from waitroom.prompts import SUMMARIZE_SYSTEM
from waitroom.schemas import ChatMessage, Extraction

OPENAI_CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Chat completion and transcript extraction over the OpenAI HTTP API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
    ) -> None:
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise RuntimeError("Missing OPENAI_API_KEY")
        self._transport = transport
        self._timeout = timeout
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self.chat_model = os.getenv("OPENAI_MODEL_CHAT") or "gpt-4o-mini"
        self.summary_model = os.getenv("OPENAI_MODEL_SUMMARY") or self.chat_model

    async def complete(self, messages: Sequence[Union[ChatMessage, dict]]) -> str:
        payload = {
            "model": self.chat_model,
            "messages": [self._as_dict(m) for m in messages],
            "temperature": 0.2,
        }
        text = self._choice_text(await self._request_with_retry(payload=payload))
        if not text:
            raise ReasoningServiceError("Empty response from LLM")
        return text

    async def extract(self, transcript_text: str) -> Extraction:
        payload = {
            "model": self.summary_model,
            "messages": [
                {"role": "system", "content": SUMMARIZE_SYSTEM},
                {"role": "user", "content": transcript_text},
            ],
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
        }
        text = self._choice_text(await self._request_with_retry(payload=payload))
        try:
            return Extraction.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ReasoningServiceError("Malformed extraction response from LLM") from exc

    async def _request_with_retry(self, *, payload: dict):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        attempts = 0
        last_error: Exception | None = None
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            while attempts <= self._max_retries:
                attempts += 1
                try:
                    response = await client.post(
                        OPENAI_CHAT_COMPLETIONS_URL,
                        headers=headers,
                        json=payload,
                    )
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as exc:
                    last_error = exc
                    status_code = exc.response.status_code
                    if not self._should_retry(status_code) or attempts > self._max_retries:
                        raise ReasoningServiceError(self._format_error(status_code)) from exc
                    logger.warning("OpenAI API returned %s, retrying (attempt %d)", status_code, attempts)
                    await self._sleep(self._retry_delay(exc.response.headers.get("Retry-After"), attempts))
                except httpx.RequestError as exc:
                    last_error = exc
                    if attempts > self._max_retries:
                        raise ReasoningServiceError("Unable to reach OpenAI API") from exc
                    logger.warning("OpenAI API request failed: %s, retrying (attempt %d)", exc, attempts)
                    await self._sleep(self._retry_delay(None, attempts))
                except ValueError as exc:
                    raise ReasoningServiceError("Unexpected OpenAI response format") from exc

        if last_error:
            raise ReasoningServiceError("Failed to contact OpenAI API") from last_error
        raise ReasoningServiceError("Failed to contact OpenAI API")

    def _should_retry(self, status_code: int) -> bool:
        return status_code == 429 or 500 <= status_code < 600

    def _retry_delay(self, retry_after: Optional[str], attempts: int) -> float:
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return self._backoff_base * (2 ** (attempts - 1))

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def _format_error(self, status_code: int) -> str:
        if status_code in (401, 403):
            return "OpenAI API rejected the request. Check the API key and its permissions."
        if status_code == 429:
            return "OpenAI API rate limit exceeded. Please try again shortly."
        if 500 <= status_code < 600:
            return "OpenAI API is currently unavailable. Please retry later."
        return "Unexpected OpenAI API error."

    @staticmethod
    def _as_dict(message: Union[ChatMessage, dict]) -> dict:
        if isinstance(message, ChatMessage):
            return message.model_dump()
        return {"role": message["role"], "content": message["content"]}

    @staticmethod
    def _choice_text(data) -> str:
        if not isinstance(data, dict):
            raise ReasoningServiceError("Unexpected OpenAI response format")

        text = []
        for choice in data.get("choices", []):
            if not isinstance(choice, dict):
                continue
            message = choice.get("message")
            if isinstance(message, dict):
                content_piece = message.get("content")
                if content_piece:
                    text.append(str(content_piece))

        return "".join(text).strip()
