"""
Request Orchestrator

Drives one inbound request through the fixed stage sequence:

    received -> transcribing (voice only) -> language_detecting -> resolving
             -> synthesizing (voice replies only) -> delivering -> delivered | failed

Every external call runs under its own stage timeout. Stages with a fallback
degrade instead of failing the request: transcription failure sends a
localized "please resend or type" message, detection failure uses the stored
preference or the system default, resolution failure uses the canned default
answer, and synthesis failure downgrades to a text-only reply. Delivery has
no fallback; exhausting its bounded retries fails the request and is
surfaced to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from . import messages
from .delivery import RetryingSender
from .error_handling import (
    DeliveryError, RequestCancelledError, RequestValidationError, TranscriptionError,
    describe_error, stage_var, with_timeout
)
from .fallback_chain import FallbackChain
from .interfaces import DeliveryChannel, MetricsSink, SynthesisService, TranscriptionService
from .language_detector import LanguageDetector
from .metrics import InMemoryMetrics
from .models import (
    AudioMessage, InboundRequest, InputKind, RequestContext, RequestStage, ResponseMode,
    TerminalStatus, TextMessage, TextRequest, VoiceRequest
)
from .structured_logging import SevakLogger, request_log_context

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Stage budgets and delivery policy"""
    transcription_timeout: float = 30.0
    language_detection_timeout: float = 5.0
    resolving_timeout: float = 10.0
    synthesis_timeout: float = 15.0
    delivery_attempt_timeout: float = 10.0
    max_delivery_attempts: int = 3
    retry_interval: float = 5.0
    request_deadline: float = 25.0
    voice_replies_enabled: bool = True
    max_message_length: int = 4096


def validate_request(request: InboundRequest, max_message_length: int = 4096):
    """Raise RequestValidationError for malformed requests"""
    if not isinstance(request, (TextRequest, VoiceRequest)):
        raise RequestValidationError(f"Unsupported request type: {type(request).__name__}")

    if not request.request_id or not request.user_id:
        raise RequestValidationError("Request id and user id are required")
    if not request.recipient:
        raise RequestValidationError(f"Request {request.request_id} has no recipient")

    if isinstance(request, TextRequest):
        if not request.text or not request.text.strip():
            raise RequestValidationError(f"Request {request.request_id} has empty text")
        if len(request.text) > max_message_length:
            raise RequestValidationError(
                f"Request {request.request_id} text is {len(request.text)} chars, "
                f"over the {max_message_length} limit"
            )
    elif not request.audio_ref:
        raise RequestValidationError(f"Voice request {request.request_id} has no audio reference")


class RequestOrchestrator:
    """Sequences transcription, detection, resolution, synthesis and delivery per request"""

    def __init__(
        self,
        transcription: Optional[TranscriptionService],
        synthesis: Optional[SynthesisService],
        language_detector: LanguageDetector,
        fallback_chain: FallbackChain,
        delivery: DeliveryChannel,
        metrics: Optional[MetricsSink] = None,
        config: Optional[OrchestratorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.transcription = transcription
        self.synthesis = synthesis
        self.language_detector = language_detector
        self.fallback_chain = fallback_chain
        self.delivery = delivery
        self.metrics = metrics or InMemoryMetrics()
        self.config = config or OrchestratorConfig()
        self._clock = clock
        self.request_logger = SevakLogger()

        self.sender = RetryingSender(
            delivery,
            max_attempts=self.config.max_delivery_attempts,
            retry_interval=self.config.retry_interval,
            attempt_timeout=self.config.delivery_attempt_timeout,
            metrics=self.metrics,
            sleep=sleep
        )

        self.stats = {
            'requests_total': 0,
            'requests_delivered': 0,
            'requests_failed': 0,
            'requests_cancelled': 0,
            'mode_online': 0,
            'mode_offline': 0,
            'transcription_failed': 0,
            'detection_degraded': 0,
            'resolving_degraded': 0,
            'synthesis_degraded': 0,
            'audio_delivery_degraded': 0,
            'delivery_failed': 0,
            'deadline_exceeded': 0
        }

    def _count(self, name: str, tags: Optional[Dict[str, str]] = None):
        self.stats[name] = self.stats.get(name, 0) + 1
        self.metrics.increment(name, tags=tags)

    async def process(
        self,
        request: InboundRequest,
        cancel_event: Optional[asyncio.Event] = None
    ) -> RequestContext:
        """Run one request to a terminal state and return its context"""
        validate_request(request, self.config.max_message_length)

        context = RequestContext.from_request(request)
        self._count('requests_total', {'input_kind': context.input_kind.value})
        deadline = self._clock() + self.config.request_deadline
        summary: Dict[str, Any] = {}

        async with request_log_context(
            context.request_id, context.user_id, context.input_kind.value,
            logger=self.request_logger, summary=summary
        ):
            try:
                await self._run(request, context, deadline, cancel_event)
            except (DeliveryError, RequestCancelledError):
                summary.update(context.to_log_dict())
                raise
            except Exception as e:
                summary.update(context.to_log_dict())
                await self._handle_unexpected(context, e)
                raise

            summary.update(context.to_log_dict())

        return context

    async def _run(
        self,
        request: InboundRequest,
        context: RequestContext,
        deadline: float,
        cancel_event: Optional[asyncio.Event]
    ):
        if context.input_kind == InputKind.VOICE:
            await self._check_cancelled(context, deadline, cancel_event)
            if not await self._transcribe(context, request):
                await self._reply_transcription_failed(context)
                return

        await self._check_cancelled(context, deadline, cancel_event)
        await self._detect_language(context)

        await self._check_cancelled(context, deadline, cancel_event)
        await self._resolve(context)

        if self._wants_voice(context):
            await self._check_cancelled(context, deadline, cancel_event)
            await self._synthesize(context)

        await self._check_cancelled(context, deadline, cancel_event)
        await self._deliver(context)

    def _enter(self, context: RequestContext, stage: RequestStage) -> float:
        context.stage = stage
        stage_var.set(stage.value)
        return self._clock()

    def _leave(self, context: RequestContext, stage: RequestStage, start: float, outcome: str = "ok"):
        elapsed = self._clock() - start
        context.record_timing(stage.value, elapsed)
        self.metrics.timing(f"stage.{stage.value}", elapsed)
        self.request_logger.log_stage(stage.value, elapsed * 1000, outcome)

    async def _check_cancelled(
        self,
        context: RequestContext,
        deadline: float,
        cancel_event: Optional[asyncio.Event]
    ):
        """Abandon remaining stages once the deadline passes or the caller cancels

        A caller that cancels has already given up on the reply, so nothing is
        sent. An expired deadline alerts and sends the user one apology.
        """
        deadline_exceeded = False
        if cancel_event is not None and cancel_event.is_set():
            reason = "cancelled by caller"
        elif self._clock() >= deadline:
            reason = f"deadline of {self.config.request_deadline:.1f}s elapsed"
            deadline_exceeded = True
        else:
            return

        stage = context.stage
        context.stage = RequestStage.FAILED
        context.terminal_status = TerminalStatus.FAILED
        context.errors.append(f"{stage.value}: {reason}")
        self._count('requests_cancelled')
        self._count('requests_failed')
        logger.warning(f"Request {context.request_id} abandoned after {stage.value}: {reason}")

        if deadline_exceeded:
            self._count('deadline_exceeded')
            details = context.to_log_dict()
            details['reason'] = f"abandoned after {stage.value}: {reason}"
            self.metrics.alert('request_deadline_exceeded', details)
            await self._send_apology(context)

        raise RequestCancelledError(f"Request {context.request_id} {reason}", context=context)

    async def _transcribe(self, context: RequestContext, request: VoiceRequest) -> bool:
        start = self._enter(context, RequestStage.TRANSCRIBING)
        language_hint = await self.language_detector.preferred_language(context.user_id)

        try:
            if self.transcription is None:
                raise TranscriptionError("No transcription service configured")
            result = await with_timeout(
                lambda: self.transcription.transcribe(request.audio_ref, language_hint),
                self.config.transcription_timeout,
                "transcription"
            )
            if not result.text or not result.text.strip():
                raise TranscriptionError("Transcription returned no text")
        except Exception as e:
            context.errors.append(f"transcribing: {describe_error(e)}")
            self._count('transcription_failed')
            self._leave(context, RequestStage.TRANSCRIBING, start, "failed")
            self.request_logger.log_degradation("transcribing", describe_error(e))
            return False

        context.input_text = result.text.strip()
        self._leave(context, RequestStage.TRANSCRIBING, start)
        return True

    async def _reply_transcription_failed(self, context: RequestContext):
        """Ask the user to resend or type, skipping detection and resolution"""
        context.apply_language(await self.language_detector.fallback_language(context.user_id))
        context.set_response_mode(ResponseMode.OFFLINE)
        context.response_text = messages.transcription_failed(context.language)
        context.response_confidence = 0.0
        await self._deliver(context)

    async def _detect_language(self, context: RequestContext):
        start = self._enter(context, RequestStage.LANGUAGE_DETECTING)
        try:
            result = await with_timeout(
                lambda: self.language_detector.detect(context.input_text, context.user_id),
                self.config.language_detection_timeout,
                "language_detection"
            )
            outcome = "ok"
        except Exception as e:
            context.errors.append(f"language_detecting: {describe_error(e)}")
            self._count('detection_degraded')
            self.request_logger.log_degradation("language_detecting", describe_error(e))
            result = await self.language_detector.fallback_language(context.user_id)
            outcome = "degraded"

        context.apply_language(result)
        self._leave(context, RequestStage.LANGUAGE_DETECTING, start, outcome)

    async def _resolve(self, context: RequestContext):
        start = self._enter(context, RequestStage.RESOLVING)
        try:
            await with_timeout(
                lambda: self.fallback_chain.resolve(context.input_text, context.language, context),
                self.config.resolving_timeout,
                "resolving"
            )
            outcome = "ok"
        except Exception as e:
            context.errors.append(f"resolving: {describe_error(e)}")
            self._count('resolving_degraded')
            self.request_logger.log_degradation("resolving", describe_error(e))
            if context.response_mode is None:
                context.set_response_mode(ResponseMode.OFFLINE)
                context.response_text = messages.default_response(context.language)
                context.response_confidence = 0.0
            outcome = "degraded"

        self._leave(context, RequestStage.RESOLVING, start, outcome)

    def _wants_voice(self, context: RequestContext) -> bool:
        return context.voice_reply and self.config.voice_replies_enabled and self.synthesis is not None

    async def _synthesize(self, context: RequestContext):
        start = self._enter(context, RequestStage.SYNTHESIZING)
        try:
            audio = await with_timeout(
                lambda: self.synthesis.synthesize(context.response_text, context.language),
                self.config.synthesis_timeout,
                "synthesis"
            )
        except Exception as e:
            context.errors.append(f"synthesizing: {describe_error(e)}")
            self._count('synthesis_degraded')
            self.request_logger.log_degradation("synthesizing", f"text-only reply: {describe_error(e)}")
            self._leave(context, RequestStage.SYNTHESIZING, start, "degraded")
            return

        context.response_audio_ref = audio.audio_ref
        self._leave(context, RequestStage.SYNTHESIZING, start)

    async def _deliver(self, context: RequestContext):
        start = self._enter(context, RequestStage.DELIVERING)

        # Text is always initiated before audio
        text_outcome = await self.sender.send(context.recipient, TextMessage(context.recipient, context.response_text))
        context.delivery_attempts += text_outcome.attempts

        if not text_outcome.success:
            self._leave(context, RequestStage.DELIVERING, start, "failed")
            self._fail_delivery(context, text_outcome.error)

        if context.response_audio_ref:
            audio_outcome = await self.sender.send(
                context.recipient, AudioMessage(context.recipient, context.response_audio_ref)
            )
            context.delivery_attempts += audio_outcome.attempts
            if not audio_outcome.success:
                context.errors.append(f"delivering: audio not delivered ({audio_outcome.error})")
                self._count('audio_delivery_degraded')
                self.request_logger.log_degradation("delivering", "audio reply not delivered, text was")

        self._leave(context, RequestStage.DELIVERING, start)
        context.stage = RequestStage.DELIVERED
        context.terminal_status = TerminalStatus.DELIVERED
        self._count('requests_delivered')
        if context.response_mode == ResponseMode.ONLINE:
            self._count('mode_online')
        else:
            self._count('mode_offline')

    def _fail_delivery(self, context: RequestContext, error: Optional[str]):
        context.stage = RequestStage.FAILED
        context.terminal_status = TerminalStatus.FAILED
        context.errors.append(f"delivering: {error}")
        self._count('delivery_failed')
        self._count('requests_failed')

        details = context.to_log_dict()
        details['reason'] = f"delivery exhausted after {context.delivery_attempts} attempts: {error}"
        self.metrics.alert('delivery_failed', details)
        logger.error(f"Delivery failed for {context.request_id}", extra={"structured_data": details})

        raise DeliveryError(
            f"Delivery to {context.recipient} failed after {context.delivery_attempts} attempts: {error}",
            attempts=context.delivery_attempts,
            context=context
        )

    async def _handle_unexpected(self, context: RequestContext, error: Exception):
        """Mark the request failed, alert, and send a best-effort apology"""
        failed_stage = context.stage
        context.stage = RequestStage.FAILED
        context.terminal_status = TerminalStatus.FAILED
        context.errors.append(f"{failed_stage.value}: {describe_error(error)}")
        self._count('requests_failed')

        details = context.to_log_dict()
        details['reason'] = describe_error(error)
        self.metrics.alert('request_failed', details)
        logger.error(f"Unexpected failure in {failed_stage.value} for {context.request_id}",
                     exc_info=error, extra={"structured_data": details})
        await self._send_apology(context)

    async def _send_apology(self, context: RequestContext):
        """Single unretried apology; a failure here is only logged"""
        language = context.language or self.language_detector.config.default_language
        try:
            result = await with_timeout(
                lambda: self.delivery.send(context.recipient, TextMessage(context.recipient, messages.generic_apology(language))),
                self.config.delivery_attempt_timeout,
                "apology_delivery"
            )
        except Exception as e:
            logger.warning(f"Apology delivery for {context.request_id} failed: {describe_error(e)}")
            return

        if not result.success:
            logger.warning(f"Apology delivery for {context.request_id} failed: {result.error}")

    def get_stats(self) -> Dict[str, Any]:
        return {
            'orchestrator': self.stats.copy(),
            'fallback_chain': self.fallback_chain.get_stats()
        }
