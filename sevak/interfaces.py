"""
Collaborator interfaces consumed by the orchestration core

Concrete transports, storage schemas and model providers live outside the
core; anything satisfying these protocols can be injected.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence

from .models import (
    AudioResult, KnowledgeEntry, OutgoingMessage, SendResult, TranscriptionResult
)

if TYPE_CHECKING:
    from .reminders import Reminder


class TranscriptionService(Protocol):
    async def transcribe(self, audio_ref: str, language_hint: Optional[str]) -> TranscriptionResult:
        """Raises TranscriptionError after exhausting its own retries"""
        ...


class SynthesisService(Protocol):
    async def synthesize(self, text: str, language: str) -> AudioResult:
        ...


class InferenceService(Protocol):
    async def complete(self, prompt: str, max_tokens: int, model: Optional[str] = None) -> str:
        ...


class EmbeddingService(Protocol):
    async def embed(self, text: str) -> Sequence[float]:
        ...


class KnowledgeStore(Protocol):
    async def entries_by_language(self, language: str) -> List[KnowledgeEntry]:
        ...


class DeliveryChannel(Protocol):
    async def send(self, recipient: str, payload: OutgoingMessage) -> SendResult:
        ...


class UserPreferenceStore(Protocol):
    async def get_preferred_language(self, user_id: str) -> Optional[str]:
        ...

    async def set_preferred_language(self, user_id: str, language: str) -> None:
        ...

    async def get_language_history(self, user_id: str) -> List[Dict[str, Any]]:
        ...

    async def set_language_history(self, user_id: str, history: List[Dict[str, Any]]) -> None:
        ...


class MetricsSink(Protocol):
    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        ...

    def timing(self, name: str, seconds: float, tags: Optional[Dict[str, str]] = None) -> None:
        ...

    def alert(self, name: str, details: Dict[str, Any]) -> None:
        ...


class ReminderStore(Protocol):
    async def put(self, reminder: 'Reminder') -> None:
        ...

    async def get(self, reminder_id: str) -> Optional['Reminder']:
        ...

    async def list_by_user(self, user_id: str) -> List['Reminder']:
        ...
