"""Amazon Transcribe integration using the streaming API."""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import tempfile
from typing import Optional

from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent
from fastapi.concurrency import run_in_threadpool

from oralassess.application.interfaces import TranscriptionServiceInterface
from oralassess.config.settings import settings

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 8192


class TranscriptionError(RuntimeError):
    """Raised when Amazon Transcribe fails to process audio successfully."""


class TranscribeService(TranscriptionServiceInterface):
    """Convert browser recordings to PCM and stream them to Amazon Transcribe."""

    def __init__(
        self,
        region: str,
        language_code: str = "en-US",
        media_sample_rate_hz: int = 16000,
        timeout_seconds: float = 120.0,
        enabled: bool = True,
    ) -> None:
        self._region = region
        self._language_code = language_code
        self._media_sample_rate_hz = media_sample_rate_hz
        self._timeout_seconds = timeout_seconds
        self._enabled = enabled

        # The streaming SDK only reads credentials from the environment chain.
        if settings.s3.access_key:
            os.environ.setdefault("AWS_ACCESS_KEY_ID", settings.s3.access_key)
        if settings.s3.secret_key:
            os.environ.setdefault("AWS_SECRET_ACCESS_KEY", settings.s3.secret_key)

        self._client = TranscribeStreamingClient(region=region) if enabled else None

    async def transcribe(self, audio: bytes, mime_type: str) -> Optional[str]:
        """Return the transcript, or ``None`` when the provider heard nothing.

        Conversion failures, stream failures and timeouts raise
        :class:`TranscriptionError`.
        """

        if not self._enabled or self._client is None:
            logger.info("Transcription disabled; skipping %s bytes of %s", len(audio), mime_type)
            return None

        if not audio:
            raise TranscriptionError("The recorded audio is empty.")

        try:
            pcm_data = await self._convert_to_pcm(audio)
        except TranscriptionError:
            raise
        except Exception as exc:
            raise TranscriptionError(f"Audio conversion failed: {exc}") from exc

        if not pcm_data:
            return None

        try:
            transcript = await asyncio.wait_for(
                self._stream(pcm_data),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TranscriptionError(
                f"Transcription timed out after {self._timeout_seconds:.0f}s"
            ) from exc

        transcript = transcript.strip()
        logger.info("Transcription complete. Length: %s", len(transcript))
        return transcript or None

    async def _stream(self, pcm_data: bytes) -> str:
        stream = await self._client.start_stream_transcription(
            language_code=self._language_code,
            media_sample_rate_hz=self._media_sample_rate_hz,
            media_encoding="pcm",
        )
        handler = _SimpleTranscriptHandler(stream.output_stream)

        async def write_chunks() -> None:
            bytes_per_sec = self._media_sample_rate_hz * 2  # 16-bit mono
            sleep_time = _CHUNK_SIZE / bytes_per_sec
            logger.debug(
                "Starting stream. Total bytes: %s. Sleep: %.4fs", len(pcm_data), sleep_time
            )
            for i in range(0, len(pcm_data), _CHUNK_SIZE):
                await stream.input_stream.send_audio_event(
                    audio_chunk=pcm_data[i : i + _CHUNK_SIZE]
                )
                # Transcribe rejects audio sent faster than real time.
                await asyncio.sleep(sleep_time)
            await stream.input_stream.end_stream()

        try:
            await asyncio.gather(write_chunks(), handler.handle_events())
        except Exception as exc:
            logger.error("Streaming loop failed: %s", exc)
            raise TranscriptionError(f"Streaming transcription failed: {exc}") from exc

        return handler.transcript

    async def _convert_to_pcm(self, audio: bytes) -> bytes:
        """Convert input audio to raw PCM s16le via ffmpeg using a thread."""
        return await run_in_threadpool(self._convert_to_pcm_sync, audio)

    def _convert_to_pcm_sync(self, audio: bytes) -> bytes:
        """Synchronous ffmpeg conversion using a temporary file to support seeking."""

        with tempfile.NamedTemporaryFile(delete=False, suffix=".tmp") as tmp_file:
            tmp_file.write(audio)
            tmp_path = tmp_file.name

        try:
            process = subprocess.run(
                [
                    "ffmpeg",
                    "-y",
                    "-i", tmp_path,
                    "-f", "s16le",
                    "-ac", "1",
                    "-ar", str(self._media_sample_rate_hz),
                    "pipe:1",
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
            if not process.stdout:
                logger.warning(
                    "ffmpeg produced empty output. stderr: %s",
                    process.stderr.decode("utf-8", errors="replace"),
                )
            return process.stdout
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            logger.error("ffmpeg failed. stderr: %s", error_msg)
            raise TranscriptionError(f"ffmpeg failed to convert audio to PCM: {error_msg}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)


class _SimpleTranscriptHandler(TranscriptResultStreamHandler):
    def __init__(self, transcript_result_stream):
        super().__init__(transcript_result_stream)
        self.transcript = ""

    async def handle_transcript_event(self, transcript_event: TranscriptEvent):
        for result in transcript_event.transcript.results:
            if result.is_partial:
                continue
            for alt in result.alternatives:
                self.transcript += alt.transcript + " "


__all__ = ["TranscribeService", "TranscriptionError"]
