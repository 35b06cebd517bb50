"""
Text-to-Speech (TTS) Service Module

Synthesizes voice replies using OpenAI's TTS API.
Features include:
- Opus output sized for messaging channels
- Audio written under a dated output directory with an expiry time
- Reuse of still-valid audio for repeated answers
- Retry logic with exponential backoff
- Cleanup of expired audio files
"""

import asyncio
import hashlib
import logging
import os
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from openai import AsyncOpenAI

from .error_handling import SynthesisError
from .models import AudioResult

logger = logging.getLogger(__name__)

# Roughly 150 words per minute at 5 characters per word
CHARS_PER_SECOND = 12.5


@dataclass
class TTSConfig:
    """Configuration for Text-to-Speech service"""
    model: str = "tts-1"
    voice: str = "alloy"  # alloy, echo, fable, onyx, nova, shimmer
    speed: float = 1.0  # 0.25 to 4.0
    response_format: str = "opus"  # mp3, opus, aac, flac

    max_text_length: int = 4096  # Maximum characters per request

    # Storage settings
    output_dir: str = "./data/audio"
    expiration_hours: float = 48.0

    # API settings
    timeout: float = 15.0
    max_attempts: int = 2
    retry_delay: float = 1.0  # Base delay for exponential backoff

    cache_enabled: bool = True


def estimate_duration(text: str) -> float:
    return len(text) / CHARS_PER_SECOND


def cleanup_expired_audio(config: TTSConfig, now: Optional[float] = None) -> int:
    """Delete audio files older than the expiration window; returns the number removed"""
    now = now if now is not None else time.time()
    cutoff = now - config.expiration_hours * 3600
    removed = 0

    if not os.path.isdir(config.output_dir):
        return 0

    for root, _dirs, files in os.walk(config.output_dir):
        for name in files:
            path = os.path.join(root, name)
            try:
                if os.path.getmtime(path) < cutoff:
                    os.remove(path)
                    removed += 1
            except OSError as e:
                logger.warning(f"Could not remove expired audio {path}: {e}")

    if removed:
        logger.info(f"Removed {removed} expired audio files from {config.output_dir}")
    return removed


class OpenAISynthesisService:
    """OpenAI Text-to-Speech service writing audio files for delivery"""

    def __init__(
        self,
        config: Optional[TTSConfig] = None,
        api_key: Optional[str] = None,
        org_id: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.config = config or TTSConfig()
        if client is None:
            client_kwargs = {"api_key": api_key}
            if org_id:
                client_kwargs["organization"] = org_id
            client = AsyncOpenAI(**client_kwargs)
        self.client = client
        self._sleep = sleep
        self._cache: Dict[str, AudioResult] = {}

        # Statistics
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.cache_hits = 0

    async def synthesize(self, text: str, language: str) -> AudioResult:
        """Convert text to speech and store it, raising SynthesisError on failure"""
        if not text or not text.strip():
            raise SynthesisError("Empty text provided for TTS")

        text = text.strip()
        if len(text) > self.config.max_text_length:
            raise SynthesisError(f"Text too long: {len(text)} > {self.config.max_text_length}")

        cache_key = self._cache_key(text, language)
        if self.config.cache_enabled and (cached := self._cached(cache_key)):
            self.cache_hits += 1
            logger.debug(f"Reusing synthesized audio {cached.audio_ref}")
            return cached

        start_time = time.time()
        audio_data = await self._synthesize_with_retry(text)
        path = self._output_path()
        try:
            await asyncio.to_thread(self._write_file, path, audio_data)
        except OSError as e:
            self.failed_requests += 1
            raise SynthesisError(f"Could not store synthesized audio: {e}", original_exception=e) from e

        result = AudioResult(
            audio_ref=path,
            duration=estimate_duration(text),
            format=self.config.response_format,
            expires_at=time.time() + self.config.expiration_hours * 3600
        )
        if self.config.cache_enabled:
            self._cache[cache_key] = result

        self.successful_requests += 1
        logger.info(f"Synthesized {len(text)} chars in {language} to {path} "
                    f"({time.time() - start_time:.2f}s)")
        return result

    async def _synthesize_with_retry(self, text: str) -> bytes:
        """Synthesize speech with retry logic"""
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_attempts):
            self.total_requests += 1
            try:
                response = await asyncio.wait_for(
                    self.client.audio.speech.create(
                        model=self.config.model,
                        voice=self.config.voice,
                        input=text,
                        speed=self.config.speed,
                        response_format=self.config.response_format
                    ),
                    timeout=self.config.timeout
                )
                audio_data = response.content
                if audio_data:
                    return audio_data
                last_error = SynthesisError("Empty audio response")
                logger.warning(f"Empty audio response (attempt {attempt + 1})")

            except Exception as e:
                last_error = e
                logger.warning(f"TTS API request failed (attempt {attempt + 1}): {e}")

            if attempt < self.config.max_attempts - 1:
                delay = self.config.retry_delay * (2 ** attempt)
                logger.info(f"Retrying in {delay:.1f} seconds...")
                await self._sleep(delay)

        self.failed_requests += 1
        logger.error(f"All {self.config.max_attempts} synthesis attempts failed")
        raise SynthesisError(f"Speech synthesis failed: {last_error}", original_exception=last_error)

    def _cache_key(self, text: str, language: str) -> str:
        key_string = f"{text}_{language}_{self.config.voice}_{self.config.speed}"
        return hashlib.sha256(key_string.encode()).hexdigest()

    def _cached(self, key: str) -> Optional[AudioResult]:
        result = self._cache.get(key)
        if result is None:
            return None
        # Leave an hour of validity for delivery retries
        if result.expires_at - time.time() < 3600 or not os.path.exists(result.audio_ref):
            del self._cache[key]
            return None
        return result

    def _output_path(self) -> str:
        today = datetime.now()
        directory = os.path.join(
            self.config.output_dir, f"{today.year:04d}", f"{today.month:02d}", f"{today.day:02d}"
        )
        return os.path.join(directory, f"{uuid.uuid4().hex}.{self.config.response_format}")

    @staticmethod
    def _write_file(path: str, audio_data: bytes):
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(audio_data)

    def cleanup_expired(self, now: Optional[float] = None) -> int:
        """Delete expired audio files and forget cached results pointing at them"""
        now = now if now is not None else time.time()
        removed = cleanup_expired_audio(self.config, now)
        self._cache = {k: v for k, v in self._cache.items() if v.expires_at > now}
        return removed

    def get_statistics(self) -> Dict[str, Any]:
        """Get service statistics"""
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "cache_hits": self.cache_hits,
            "cached_items": len(self._cache)
        }


def create_openai_synthesis_service(
    api_key: str,
    config: Optional[TTSConfig] = None,
    org_id: Optional[str] = None
) -> OpenAISynthesisService:
    """Factory function to create OpenAISynthesisService with default configuration"""
    return OpenAISynthesisService(config or TTSConfig(), api_key, org_id)
