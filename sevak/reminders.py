"""
Reminder commands

Create, cancel, list and deliver reminders. Commands are plain dataclasses
dispatched by type; delivery reuses the orchestrator's bounded-retry sender
so reminders get the same attempt budget as regular replies.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from . import messages
from .delivery import RetryingSender
from .error_handling import ReminderError
from .interfaces import ReminderStore
from .models import TextMessage

logger = logging.getLogger(__name__)

MAX_FUTURE_SECONDS = 365 * 24 * 3600


class ReminderStatus(Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class Reminder:
    reminder_id: str
    user_id: str
    recipient: str
    text: str
    scheduled_time: float
    language: str
    created_at: float
    status: ReminderStatus = ReminderStatus.PENDING
    delivery_attempts: int = 0
    last_attempt_at: Optional[float] = None


@dataclass
class CreateReminder:
    user_id: str
    recipient: str
    text: str
    scheduled_time: float
    language: str = 'hi'


@dataclass
class CancelReminder:
    reminder_id: str
    user_id: str


@dataclass
class ListReminders:
    user_id: str


@dataclass
class DeliverReminder:
    reminder_id: str


ReminderCommand = Union[CreateReminder, CancelReminder, ListReminders, DeliverReminder]


@dataclass
class ReminderResult:
    reminder_id: Optional[str]
    scheduled_time: Optional[float]
    success: bool
    error: Optional[str] = None


class InMemoryReminderStore:
    def __init__(self):
        self._reminders: Dict[str, Reminder] = {}

    async def put(self, reminder: Reminder) -> None:
        self._reminders[reminder.reminder_id] = reminder

    async def get(self, reminder_id: str) -> Optional[Reminder]:
        return self._reminders.get(reminder_id)

    async def list_by_user(self, user_id: str) -> List[Reminder]:
        return [r for r in self._reminders.values() if r.user_id == user_id]


class ReminderService:
    """Handles reminder commands against a store and a delivery sender"""

    def __init__(
        self,
        store: ReminderStore,
        sender: RetryingSender,
        clock: Callable[[], float] = time.time,
        max_future_seconds: float = MAX_FUTURE_SECONDS
    ):
        self.store = store
        self.sender = sender
        self._clock = clock
        self.max_future_seconds = max_future_seconds

        self.stats = {
            'created': 0,
            'rejected': 0,
            'cancelled': 0,
            'delivered': 0,
            'failed': 0
        }

    async def handle(self, command: ReminderCommand):
        if isinstance(command, CreateReminder):
            return await self.create(command)
        if isinstance(command, CancelReminder):
            return await self.cancel(command)
        if isinstance(command, ListReminders):
            return await self.list(command)
        if isinstance(command, DeliverReminder):
            return await self.deliver(command)
        raise TypeError(f"Unknown reminder command: {type(command).__name__}")

    async def create(self, command: CreateReminder) -> ReminderResult:
        now = self._clock()

        if not command.text or not command.text.strip():
            return self._reject("Reminder text is empty")
        if command.scheduled_time <= now:
            return self._reject("Scheduled time must be in the future")
        if command.scheduled_time > now + self.max_future_seconds:
            return self._reject("Scheduled time is more than one year ahead")

        reminder = Reminder(
            reminder_id=f"reminder#{uuid.uuid4()}",
            user_id=command.user_id,
            recipient=command.recipient,
            text=command.text.strip(),
            scheduled_time=command.scheduled_time,
            language=command.language,
            created_at=now
        )
        await self.store.put(reminder)
        self.stats['created'] += 1
        logger.info(f"Created {reminder.reminder_id} for {command.user_id} at {command.scheduled_time:.0f}")
        return ReminderResult(reminder.reminder_id, reminder.scheduled_time, True)

    def _reject(self, error: str) -> ReminderResult:
        self.stats['rejected'] += 1
        logger.info(f"Reminder rejected: {error}")
        return ReminderResult(None, None, False, error)

    async def cancel(self, command: CancelReminder) -> ReminderResult:
        reminder = await self.store.get(command.reminder_id)

        # Reminders of other users are reported as missing
        if reminder is None or reminder.user_id != command.user_id:
            return ReminderResult(command.reminder_id, None, False, "Reminder not found")
        if reminder.status != ReminderStatus.PENDING:
            return ReminderResult(
                command.reminder_id, reminder.scheduled_time, False,
                f"Reminder is already {reminder.status.value}"
            )

        reminder.status = ReminderStatus.CANCELLED
        await self.store.put(reminder)
        self.stats['cancelled'] += 1
        return ReminderResult(reminder.reminder_id, reminder.scheduled_time, True)

    async def list(self, command: ListReminders) -> List[Reminder]:
        """Pending reminders of a user, soonest first"""
        reminders = await self.store.list_by_user(command.user_id)
        pending = [r for r in reminders if r.status == ReminderStatus.PENDING]
        return sorted(pending, key=lambda r: r.scheduled_time)

    async def deliver(self, command: DeliverReminder) -> ReminderResult:
        reminder = await self.store.get(command.reminder_id)
        if reminder is None:
            raise ReminderError(f"Reminder {command.reminder_id} does not exist")
        if reminder.status != ReminderStatus.PENDING:
            return ReminderResult(
                reminder.reminder_id, reminder.scheduled_time, False,
                f"Reminder is {reminder.status.value}"
            )

        body = messages.reminder_text(reminder.language, reminder.text)
        outcome = await self.sender.send(reminder.recipient, TextMessage(reminder.recipient, body))

        reminder.delivery_attempts += outcome.attempts
        reminder.last_attempt_at = self._clock()
        if outcome.success:
            reminder.status = ReminderStatus.DELIVERED
            self.stats['delivered'] += 1
        else:
            reminder.status = ReminderStatus.FAILED
            self.stats['failed'] += 1
            logger.error(f"Reminder {reminder.reminder_id} not delivered after {outcome.attempts} attempts")
        await self.store.put(reminder)

        return ReminderResult(reminder.reminder_id, reminder.scheduled_time, outcome.success, outcome.error)

    def get_stats(self):
        return self.stats.copy()
