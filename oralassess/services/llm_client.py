"""Bedrock ``converse`` client used by every language-model operation."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any, Optional

from botocore.config import Config
from fastapi.concurrency import run_in_threadpool

from oralassess.config.settings import settings
from oralassess.services.aws import create_boto3_client
from oralassess.telemetry import observe_model_latency

logger = logging.getLogger("oralassess.pipeline")


class LlmInvocationError(RuntimeError):
    """Raised when the Bedrock invocation fails."""


def _decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode the BEDROCK_API_KEY secret (base64 ``access:secret``) into key components."""

    if not secret_value:
        return None

    try:
        decoded_bytes = base64.b64decode(secret_value.strip())
    except (binascii.Error, ValueError):
        decoded_bytes = secret_value.encode("utf-8", "ignore")

    filtered = "".join(chr(b) for b in decoded_bytes if 31 < b < 127)
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


def _reply_text(response: dict[str, Any]) -> str:
    blocks = response.get("output", {}).get("message", {}).get("content", [])
    return "\n".join(block["text"] for block in blocks if block.get("text")).strip()


class BedrockLlmClient:
    """One system prompt plus one user turn in, the model's text reply out.

    Throttling and transient failures are retried by botocore (adaptive mode);
    anything still failing surfaces as ``LlmInvocationError``.
    """

    def __init__(self, client: Any | None = None) -> None:
        self._model_id = settings.bedrock.model_id
        if client is not None:
            self._client = client
            return

        keys = None
        if settings.bedrock.api_key:
            keys = _decode_bedrock_api_key(settings.bedrock.api_key.get_secret_value())

        self._client = create_boto3_client(
            "bedrock-runtime",
            region_name=settings.bedrock.region,
            aws_access_key_id=keys[0] if keys else None,
            aws_secret_access_key=keys[1] if keys else None,
            config=Config(
                read_timeout=settings.bedrock.read_timeout_seconds,
                retries={"max_attempts": settings.bedrock.max_attempts, "mode": "adaptive"},
            ),
        )

    @property
    def model_id(self) -> str:
        return self._model_id

    async def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str | None:
        """Return the reply text, or ``None`` when the model produced no text."""

        request = {
            "modelId": self._model_id,
            "system": [{"text": system_prompt}],
            "messages": [{"role": "user", "content": [{"text": user_prompt}]}],
            "inferenceConfig": {
                "maxTokens": max_tokens or settings.bedrock.max_tokens,
                "temperature": settings.bedrock.temperature if temperature is None else temperature,
                "topP": settings.bedrock.top_p,
            },
        }

        started = time.perf_counter()
        try:
            response = await run_in_threadpool(lambda: self._client.converse(**request))
        except Exception as exc:  # pragma: no cover - external dependency
            raise LlmInvocationError(f"Bedrock converse failed: {exc}") from exc
        finally:
            observe_model_latency(self._model_id, time.perf_counter() - started)

        if response.get("stopReason") == "max_tokens":
            logger.warning(
                "Model reply truncated at maxTokens=%s model=%s",
                request["inferenceConfig"]["maxTokens"],
                self._model_id,
            )
        usage = response.get("usage") or {}
        logger.debug(
            "Bedrock usage model=%s input_tokens=%s output_tokens=%s",
            self._model_id,
            usage.get("inputTokens"),
            usage.get("outputTokens"),
        )
        return _reply_text(response) or None


__all__ = ["BedrockLlmClient", "LlmInvocationError"]
