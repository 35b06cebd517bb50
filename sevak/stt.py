"""
Speech-to-Text (STT) Service Module

Transcribes inbound voice notes using OpenAI's Whisper API.
Features include:
- Audio fetched from a URL (httpx) or a local storage path
- Retry logic with exponential backoff (2 attempts by default)
- Language hint passed through to Whisper
- Confidence estimation, since Whisper returns none
"""

import asyncio
import io
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from openai import AsyncOpenAI

from .error_handling import TranscriptionError
from .models import LANGUAGE_NAMES, TranscriptionResult

logger = logging.getLogger(__name__)

# Whisper reports the detected language by name
_LANGUAGE_CODES = {name.lower(): code for code, name in LANGUAGE_NAMES.items()}


@dataclass
class STTConfig:
    """Configuration for Speech-to-Text service"""
    model: str = "whisper-1"
    temperature: float = 0.0
    response_format: str = "verbose_json"
    default_language: str = "hi"

    # Audio fetch settings
    fetch_timeout: float = 10.0
    max_audio_bytes: int = 25 * 1024 * 1024  # Whisper API upload limit

    # API settings
    timeout: float = 20.0
    max_attempts: int = 2
    retry_delay: float = 1.0  # Base delay for exponential backoff
    backoff_multiplier: float = 2.0


class WhisperTranscriptionService:
    """OpenAI Whisper transcription service"""

    def __init__(
        self,
        config: Optional[STTConfig] = None,
        api_key: Optional[str] = None,
        org_id: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        media_headers: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.config = config or STTConfig()
        if client is None:
            client_kwargs = {"api_key": api_key}
            if org_id:
                client_kwargs["organization"] = org_id
            client = AsyncOpenAI(**client_kwargs)
        self.client = client
        self.http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(self.config.fetch_timeout))
        self.media_headers = media_headers or {}
        self._sleep = sleep

        # Statistics
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.total_processing_time = 0.0

    async def transcribe(self, audio_ref: str, language_hint: Optional[str] = None) -> TranscriptionResult:
        """Transcribe the referenced audio, raising TranscriptionError once attempts are exhausted"""
        start_time = time.time()
        self.total_requests += 1

        try:
            audio_data = await self._load_audio(audio_ref)
            result = await self._transcribe_with_retry(audio_data, audio_ref, language_hint)
        except TranscriptionError:
            self.failed_requests += 1
            raise

        processing_time = time.time() - start_time
        self.successful_requests += 1
        self.total_processing_time += processing_time
        logger.info(f"Transcription successful: {len(result.text)} chars in {result.language} "
                    f"(Processing: {processing_time:.2f}s)")
        return result

    async def _load_audio(self, audio_ref: str) -> bytes:
        try:
            if audio_ref.startswith(("http://", "https://")):
                response = await self.http_client.get(audio_ref, headers=self.media_headers)
                response.raise_for_status()
                audio_data = response.content
            else:
                with open(audio_ref, "rb") as f:
                    audio_data = f.read()
        except (httpx.HTTPError, OSError) as e:
            raise TranscriptionError(f"Could not fetch audio {audio_ref}: {e}", original_exception=e) from e

        if not audio_data:
            raise TranscriptionError(f"Audio {audio_ref} is empty")
        if len(audio_data) > self.config.max_audio_bytes:
            raise TranscriptionError(
                f"Audio {audio_ref} is {len(audio_data)} bytes, over the {self.config.max_audio_bytes} byte limit"
            )
        return audio_data

    async def _transcribe_with_retry(
        self,
        audio_data: bytes,
        audio_ref: str,
        language_hint: Optional[str]
    ) -> TranscriptionResult:
        """Perform transcription with exponential backoff retry"""
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_attempts):
            try:
                audio_file = io.BytesIO(audio_data)
                audio_file.name = os.path.basename(audio_ref.split("?")[0]) or "audio.ogg"

                request = {
                    "model": self.config.model,
                    "file": audio_file,
                    "response_format": self.config.response_format,
                    "temperature": self.config.temperature
                }
                if language_hint:
                    request["language"] = language_hint

                response = await asyncio.wait_for(
                    self.client.audio.transcriptions.create(**request),
                    timeout=self.config.timeout
                )

                text = (getattr(response, 'text', '') or '').strip()
                language = self._language_code(getattr(response, 'language', None), language_hint)
                return TranscriptionResult(
                    text=text,
                    confidence=self._estimate_confidence(text),
                    language=language
                )

            except Exception as e:
                last_error = e
                logger.warning(f"Transcription attempt {attempt + 1} failed: {e}")

                if attempt < self.config.max_attempts - 1:
                    delay = self.config.retry_delay * (self.config.backoff_multiplier ** attempt)
                    logger.info(f"Retrying in {delay:.1f} seconds...")
                    await self._sleep(delay)

        logger.error(f"All transcription attempts failed after {self.config.max_attempts} tries")
        raise TranscriptionError(
            f"Transcription failed after {self.config.max_attempts} attempts: {last_error}",
            attempts=self.config.max_attempts,
            original_exception=last_error
        )

    def _language_code(self, reported: Optional[str], language_hint: Optional[str]) -> str:
        if reported:
            reported = reported.lower()
            if reported in LANGUAGE_NAMES:
                return reported
            if reported in _LANGUAGE_CODES:
                return _LANGUAGE_CODES[reported]
        return language_hint or self.config.default_language

    def _estimate_confidence(self, text: str) -> float:
        """Estimate confidence score based on text characteristics"""
        if not text:
            return 0.0

        confidence = 0.5

        # Longer text generally indicates better transcription
        if len(text) > 10:
            confidence += 0.2

        # Check for common transcription artifacts
        if not any(marker in text.lower() for marker in ['[', ']', 'inaudible', 'unclear']):
            confidence += 0.2

        return min(max(confidence, 0.0), 1.0)

    def get_statistics(self) -> Dict[str, Any]:
        """Get service statistics"""
        avg_processing_time = (self.total_processing_time / self.successful_requests
                               if self.successful_requests > 0 else 0.0)

        return {
            'total_requests': self.total_requests,
            'successful_requests': self.successful_requests,
            'failed_requests': self.failed_requests,
            'success_rate': (self.successful_requests / self.total_requests
                             if self.total_requests > 0 else 0.0),
            'average_processing_time': avg_processing_time
        }


def create_whisper_transcription_service(
    api_key: str,
    config: Optional[STTConfig] = None,
    org_id: Optional[str] = None,
    media_headers: Optional[Dict[str, str]] = None
) -> WhisperTranscriptionService:
    """Factory function to create WhisperTranscriptionService with default configuration"""
    service = WhisperTranscriptionService(config or STTConfig(), api_key, org_id, media_headers=media_headers)
    logger.info("Whisper transcription service created")
    return service
