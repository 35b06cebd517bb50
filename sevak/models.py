"""
Data model for the Sevak orchestration core

Request variants, the per-request context threaded through the orchestration
stages, knowledge entries and the result types exchanged with external
services.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

# ISO 639-1 codes of the supported Indian languages
SUPPORTED_LANGUAGES = ('hi', 'en', 'ta', 'te', 'bn', 'mr', 'gu', 'kn', 'ml', 'pa')

LANGUAGE_NAMES = {
    'hi': 'Hindi',
    'en': 'English',
    'ta': 'Tamil',
    'te': 'Telugu',
    'bn': 'Bengali',
    'mr': 'Marathi',
    'gu': 'Gujarati',
    'kn': 'Kannada',
    'ml': 'Malayalam',
    'pa': 'Punjabi',
}


class InputKind(Enum):
    TEXT = "text"
    VOICE = "voice"


class ResponseMode(Enum):
    ONLINE = "online"    # Model-backed answer
    OFFLINE = "offline"  # Local search or canned answer


class LanguageSource(Enum):
    DETECTED = "detected"
    STORED_PREFERENCE = "stored_preference"
    SYSTEM_DEFAULT = "system_default"


class RequestStage(Enum):
    """Orchestration stages in execution order"""
    RECEIVED = "received"
    TRANSCRIBING = "transcribing"
    LANGUAGE_DETECTING = "language_detecting"
    RESOLVING = "resolving"
    SYNTHESIZING = "synthesizing"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    FAILED = "failed"


class TerminalStatus(Enum):
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class TextRequest:
    """Inbound text message"""
    request_id: str
    user_id: str
    recipient: str
    text: str
    timestamp: float = field(default_factory=time.time)
    voice_reply: bool = False

    @property
    def input_kind(self) -> InputKind:
        return InputKind.TEXT

    @property
    def raw_input(self) -> str:
        return self.text


@dataclass
class VoiceRequest:
    """Inbound voice note, referenced by URL or storage path"""
    request_id: str
    user_id: str
    recipient: str
    audio_ref: str
    mime_type: str = "audio/ogg"
    timestamp: float = field(default_factory=time.time)
    voice_reply: bool = True

    @property
    def input_kind(self) -> InputKind:
        return InputKind.VOICE

    @property
    def raw_input(self) -> str:
        return self.audio_ref


InboundRequest = Union[TextRequest, VoiceRequest]


@dataclass(frozen=True)
class KnowledgeEntry:
    """Immutable FAQ record owned by the external knowledge store"""
    entry_id: str
    question: str
    answer: str
    category: str
    language: str
    keywords: Tuple[str, ...] = ()
    embedding: Tuple[float, ...] = ()


@dataclass
class FallbackAttemptResult:
    """Answer produced by one fallback strategy"""
    text: str
    mode: ResponseMode
    confidence: float
    elapsed: float
    strategy: str
    sources: List[str] = field(default_factory=list)


@dataclass
class LanguageResult:
    """Resolved language for a request"""
    language: str
    confidence: float
    source: LanguageSource


@dataclass
class TranscriptionResult:
    text: str
    confidence: float
    language: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class AudioResult:
    """Synthesized audio stored where the delivery channel can reach it"""
    audio_ref: str
    duration: float
    format: str
    expires_at: float


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TextMessage:
    recipient: str
    body: str


@dataclass
class AudioMessage:
    recipient: str
    audio_ref: str


OutgoingMessage = Union[TextMessage, AudioMessage]


@dataclass
class RequestContext:
    """
    Per-request record mutated in place as stages complete.

    The response mode is set exactly once, by whichever strategy produced the
    accepted answer.
    """
    request_id: str
    user_id: str
    recipient: str
    input_kind: InputKind
    raw_input: str
    voice_reply: bool = False
    input_text: Optional[str] = None
    language: Optional[str] = None
    language_confidence: float = 0.0
    language_source: Optional[LanguageSource] = None
    response_text: Optional[str] = None
    response_mode: Optional[ResponseMode] = None
    response_confidence: float = 0.0
    response_audio_ref: Optional[str] = None
    stage: RequestStage = RequestStage.RECEIVED
    stage_timings: Dict[str, float] = field(default_factory=dict)
    terminal_status: Optional[TerminalStatus] = None
    delivery_attempts: int = 0
    errors: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def from_request(cls, request: InboundRequest) -> 'RequestContext':
        text = request.text if isinstance(request, TextRequest) else None
        return cls(
            request_id=request.request_id,
            user_id=request.user_id,
            recipient=request.recipient,
            input_kind=request.input_kind,
            raw_input=request.raw_input,
            voice_reply=request.voice_reply,
            input_text=text
        )

    def set_response_mode(self, mode: ResponseMode) -> None:
        if self.response_mode is not None:
            raise RuntimeError(
                f"Response mode already set to {self.response_mode.value} for {self.request_id}"
            )
        self.response_mode = mode

    def apply_language(self, result: LanguageResult) -> None:
        self.language = result.language
        self.language_confidence = result.confidence
        self.language_source = result.source

    def record_timing(self, stage: str, elapsed: float) -> None:
        self.stage_timings[stage] = elapsed

    def to_log_dict(self) -> Dict[str, Any]:
        return {
            'request_id': self.request_id,
            'user_id': self.user_id,
            'input_kind': self.input_kind.value,
            'language': self.language,
            'language_confidence': self.language_confidence,
            'language_source': self.language_source.value if self.language_source else None,
            'response_mode': self.response_mode.value if self.response_mode else None,
            'response_confidence': self.response_confidence,
            'stage': self.stage.value,
            'stage_timings': dict(self.stage_timings),
            'terminal_status': self.terminal_status.value if self.terminal_status else None,
            'delivery_attempts': self.delivery_attempts,
            'errors': list(self.errors),
        }
