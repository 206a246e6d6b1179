"""Sign recognizer adapter using a DashScope Qwen-VL model.

The model receives one JPEG frame as a base64 data URI together with a
short instruction and answers with the English word or phrase for the
sign. The SDK call is blocking, so ``classify`` runs it on a worker
thread and the event loop stays free.
"""

from __future__ import annotations

import asyncio
import os
from http import HTTPStatus

from loguru import logger

from errors import GENERIC, RATE_LIMITED, ClassificationError
from models import CapturedImage

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

SIGN_PROMPT = (
    "You are an advanced AI expert specializing in American Sign Language (ASL) translation. "
    "Your task is to interpret images of hand signs and provide the corresponding English "
    "word or phrase. Strive for accuracy and attempt to recognize a comprehensive range of "
    "ASL signs. If a sign is unclear or ambiguous, provide your best interpretation. "
    "The output should be the translated text only."
)

_RATE_LIMIT_MARKERS = ("throttl", "rate limit", "ratelimit", "too many requests", "429")


class DashscopeRecognizerAdapter:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-vl-plus",
        prompt: str = SIGN_PROMPT,
        request_timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._prompt = prompt
        self._request_timeout_s = request_timeout_s

    async def classify(self, image: CapturedImage) -> str:
        return await asyncio.to_thread(self._classify_blocking, image)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _classify_blocking(self, image: CapturedImage) -> str:
        if dashscope is None:
            raise ClassificationError("dashscope is not installed")

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise ClassificationError("No API key configured")

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"image": image.to_data_uri()},
                            {"text": self._prompt},
                        ],
                    }
                ],
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise self._to_error(str(exc)) from exc

        status = self._get(response, "status_code")
        if status is not None and status != HTTPStatus.OK:
            code = self._get(response, "code") or ""
            message = self._get(response, "message") or ""
            raise self._to_error(f"{status} {code} {message}".strip(), status=status)

        text = self._extract_text(response)
        logger.debug(f"recognizer: raw label = {text!r}")
        return text

    @staticmethod
    def _get(response: object, key: str) -> object:
        if isinstance(response, dict):
            return response.get(key)
        return getattr(response, key, None)

    def _extract_text(self, response: object) -> str:
        """Pull the answer text from a MultiModalConversation response."""
        output = self._get(response, "output")
        if not isinstance(output, dict):
            return ""
        choices = output.get("choices", [])
        if not choices:
            return ""
        message = choices[0].get("message", {})
        content = message.get("content", [])
        if isinstance(content, str):
            return content
        parts = [str(item.get("text", "")) for item in content if isinstance(item, dict)]
        return "".join(parts)

    def _to_error(self, message: str, status: object = None) -> ClassificationError:
        """Map an SDK/network failure onto the two classification error kinds."""
        low = message.lower()
        if status == HTTPStatus.TOO_MANY_REQUESTS or any(m in low for m in _RATE_LIMIT_MARKERS):
            return ClassificationError(message, code=RATE_LIMITED)
        return ClassificationError(message, code=GENERIC)
