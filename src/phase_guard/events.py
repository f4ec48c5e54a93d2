"""
Event channel for phase, approval, and budget notifications.

Components publish typed event objects; callers subscribe per event type
(or to everything) and get back an unsubscribe callable. Delivery is
synchronous; handlers registered for the same event type run in
subscription order. A failing handler is logged and does not stop
delivery to the remaining handlers.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass
class PhaseEvent:
	"""Base class for everything published on an EventBus."""
	timestamp: str = field(default_factory=lambda: datetime.now().isoformat(), kw_only=True)


@dataclass
class TaskEvent(PhaseEvent):
	"""A controller event re-published with the owning task id."""
	task_id: str
	event: PhaseEvent


class EventBus:
	"""Minimal observer registry keyed by event class."""

	def __init__(self):
		self._handlers: dict[Optional[type], list[Handler]] = {}

	def subscribe(self, handler: Handler, event_type: Optional[type] = None) -> Callable[[], None]:
		"""
		Register a handler.

		Args:
			handler: Callable receiving the event object
			event_type: Only deliver events that are instances of this class.
				None delivers every event.

		Returns:
			Callable that removes the subscription
		"""
		self._handlers.setdefault(event_type, []).append(handler)

		def unsubscribe() -> None:
			handlers = self._handlers.get(event_type, [])
			if handler in handlers:
				handlers.remove(handler)

		return unsubscribe

	def publish(self, event: PhaseEvent) -> None:
		"""Deliver an event to all matching handlers."""
		for event_type, handlers in list(self._handlers.items()):
			if event_type is not None and not isinstance(event, event_type):
				continue
			for handler in list(handlers):
				try:
					handler(event)
				except Exception as e:
					logger.error(f"Event handler failed for {type(event).__name__}: {e}")

	def clear(self) -> None:
		"""Drop every subscription."""
		self._handlers.clear()

	@property
	def subscriber_count(self) -> int:
		return sum(len(h) for h in self._handlers.values())
