"""Bedrock-backed language model for follow-ups, off-topic checks and rubric scoring."""

from __future__ import annotations

import logging
from typing import Optional, Type, TypeVar

from pydantic import ValidationError

from oralassess.application.interfaces import (
    AxisScore,
    LanguageModelInterface,
    OffTopicJudgment,
)
from oralassess.services.llm_client import BedrockLlmClient
from oralassess.services.response_contract import (
    AxisScoreResponse,
    FollowupResponse,
    OffTopicResponse,
    ResponseContractError,
)
from oralassess.telemetry import record_model_call

logger = logging.getLogger("oralassess.pipeline")

_MAX_JSON_RETRIES = 2  # Retries when the model returns invalid JSON.
_NO_TRANSCRIPT = "(no transcript available: the recording could not be transcribed)"

_ContractT = TypeVar("_ContractT", FollowupResponse, OffTopicResponse, AxisScoreResponse)

FOLLOWUP_SYSTEM_PROMPT = (
    "You are an oral examiner probing a student's spoken answer. "
    "Ask exactly one short, friendly follow-up question that asks the student to "
    "extend or justify something they actually said. Do not reveal the answer. "
    'Reply with JSON only: {"followupQuestion": "..."}'
)

OFF_TOPIC_SYSTEM_PROMPT = (
    "You check whether a student's spoken answer addresses the question asked. "
    "An answer that is wrong but on topic is NOT off topic. Only flag answers "
    "that ignore the question, are silence or filler, or discuss something unrelated. "
    'Reply with JSON only: {"offTopic": true|false, "confidence": 0.0-1.0, "reason": "..."}'
)

SCORING_SYSTEM_PROMPT = (
    "You grade one spoken answer on a single rubric axis. Follow the rubric "
    "instructions exactly, quote or paraphrase the transcript when justifying, "
    "and give an integer score inside the stated scale. If there is no transcript, "
    "give the lowest score and say the answer could not be evaluated. "
    'Reply with JSON only: {"score": <integer>, "justification": "..."}'
)


def _truncate(value: str, max_length: int = 500) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


class BedrockLanguageModel(LanguageModelInterface):
    """Run prompts through Bedrock and validate every reply against a JSON contract."""

    def __init__(self, client: BedrockLlmClient | None = None) -> None:
        self._client = client or BedrockLlmClient()

    async def generate_followup(self, question: str, transcript: str) -> str:
        user_prompt = f"Question:\n{question}\n\nStudent answer (transcript):\n{transcript}"
        result = await self._invoke_contract(
            "followup", FollowupResponse, FOLLOWUP_SYSTEM_PROMPT, user_prompt
        )
        return result.question

    async def detect_off_topic(self, question: str, transcript: str) -> OffTopicJudgment:
        user_prompt = f"Question:\n{question}\n\nStudent answer (transcript):\n{transcript}"
        result = await self._invoke_contract(
            "off_topic", OffTopicResponse, OFF_TOPIC_SYSTEM_PROMPT, user_prompt
        )
        return OffTopicJudgment(off_topic=result.off_topic, confidence=result.confidence)

    async def score_axis(
        self,
        question: str,
        transcript: Optional[str],
        rubric_instructions: str,
        scale_min: int,
        scale_max: int,
    ) -> AxisScore:
        user_prompt = (
            f"Rubric instructions:\n{rubric_instructions}\n\n"
            f"Scale: {scale_min} (lowest) to {scale_max} (highest)\n\n"
            f"Question:\n{question}\n\n"
            f"Student answer (transcript):\n{transcript or _NO_TRANSCRIPT}"
        )
        result = await self._invoke_contract(
            "score_axis", AxisScoreResponse, SCORING_SYSTEM_PROMPT, user_prompt
        )
        return AxisScore(score=result.score, justification=result.justification)

    async def _invoke_contract(
        self,
        operation: str,
        contract: Type[_ContractT],
        system_prompt: str,
        user_prompt: str,
    ) -> _ContractT:
        """Invoke the model and validate the reply, retrying on invalid JSON."""

        for attempt in range(_MAX_JSON_RETRIES + 1):
            raw_response = await self._client.invoke(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
            )
            if not raw_response:
                record_model_call(operation, "empty")
                raise ResponseContractError(f"Model returned an empty response for {operation}.")

            logger.debug(
                "Raw model response operation=%s attempt=%s: %s",
                operation,
                attempt + 1,
                _truncate(raw_response),
            )

            try:
                parsed = contract.from_json(raw_response)
            except ValidationError as exc:
                logger.warning(
                    "Model produced invalid JSON operation=%s attempt=%s: %s",
                    operation,
                    attempt + 1,
                    exc,
                )
                if attempt < _MAX_JSON_RETRIES:
                    continue
                record_model_call(operation, "invalid")
                raise ResponseContractError(
                    f"Model returned invalid JSON for {operation} even after retrying."
                ) from exc

            record_model_call(operation, "ok")
            return parsed

        # Unreachable: the loop either returns or raises.
        raise ResponseContractError(f"No valid response obtained for {operation}.")


__all__ = ["BedrockLanguageModel"]
