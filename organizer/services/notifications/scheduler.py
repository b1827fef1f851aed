"""
Notification Scheduler

Maps an entity's reminder to one platform alert.

INVARIANTS:
- At most one pending alert per entity: scheduling always cancels
  first (identifier ``task_<uuid>``), so re-scheduling never duplicates
- Cancelling an entity with nothing scheduled is a no-op

Inbound actions come back as an action identifier plus the entity id:
``complete`` or ``snooze-<N>-minutes``. They are parsed here and
dispatched to whichever manager registered as the action handler.
"""

import re
from datetime import datetime
from typing import Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, Field

from organizer.models.common import utcnow
from organizer.services.notifications.center import (
    NotificationCenter,
    NotificationRequest,
)


logger = structlog.get_logger(__name__)

COMPLETE_ACTION = "complete"
DEFAULT_SNOOZE_MINUTES = 15

_SNOOZE_PATTERN = re.compile(r"^snooze-(\d+)-minutes$")


def snooze_action(minutes: int = DEFAULT_SNOOZE_MINUTES) -> str:
    return f"snooze-{minutes}-minutes"


class NotificationAction(BaseModel):
    """A parsed inbound action."""
    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., pattern="^(complete|snooze)$")
    minutes: int = Field(default=0, ge=0)

    @classmethod
    def parse(cls, action_id: str) -> Optional["NotificationAction"]:
        """Parse an action identifier; None when it is not recognised."""
        if action_id == COMPLETE_ACTION:
            return cls(kind="complete")
        match = _SNOOZE_PATTERN.match(action_id)
        if match and int(match.group(1)) > 0:
            return cls(kind="snooze", minutes=int(match.group(1)))
        return None


ActionHandler = Callable[[NotificationAction, UUID], None]


class NotificationScheduler:
    """Schedules, cancels and dispatches alerts for one entity family."""

    def __init__(
        self,
        center: NotificationCenter,
        prefix: str = "task",
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._center = center
        self._prefix = prefix
        self._clock = clock
        self._handler: Optional[ActionHandler] = None
        self.snooze_minutes = snooze_minutes

    @property
    def center(self) -> NotificationCenter:
        return self._center

    @property
    def default_actions(self) -> tuple[str, ...]:
        return (COMPLETE_ACTION, snooze_action(self.snooze_minutes))

    def identifier_for(self, entity_id: UUID) -> str:
        return f"{self._prefix}_{entity_id}"

    def entity_id_from(self, value: Union[str, UUID]) -> UUID:
        """Accept a bare UUID or a ``<prefix>_<uuid>`` identifier."""
        if isinstance(value, UUID):
            return value
        prefix = f"{self._prefix}_"
        if value.startswith(prefix):
            value = value[len(prefix):]
        return UUID(value)

    def schedule(
        self,
        entity_id: UUID,
        fire_at: datetime,
        title: str,
        body: str = "",
        actions: Optional[tuple[str, ...]] = None,
    ) -> bool:
        """
        Replace the entity's alert with one firing at ``fire_at``.

        A fire time that has already passed only cancels.

        Returns:
            True if an alert is now pending

        Raises:
            SchedulingError: If the platform rejects the request
        """
        self.cancel(entity_id)

        if fire_at <= self._clock():
            logger.debug("reminder_in_past", entity_id=str(entity_id), fire_at=fire_at.isoformat())
            return False

        request = NotificationRequest(
            identifier=self.identifier_for(entity_id),
            entity_id=entity_id,
            fire_at=fire_at,
            title=title,
            body=body,
            actions=actions if actions is not None else self.default_actions,
        )
        self._center.add(request)
        logger.debug("reminder_scheduled", identifier=request.identifier, fire_at=fire_at.isoformat())
        return True

    def cancel(self, entity_id: UUID) -> None:
        self._center.remove(self.identifier_for(entity_id))

    def is_scheduled(self, entity_id: UUID) -> bool:
        return self.identifier_for(entity_id) in self._center.pending_identifiers()

    def set_action_handler(self, handler: Optional[ActionHandler]) -> None:
        self._handler = handler

    def on_action(self, action_id: str, entity_id: Union[str, UUID]) -> bool:
        """
        Dispatch an inbound action to the registered handler.

        Returns:
            False when the action is unknown or nobody is listening
        """
        action = NotificationAction.parse(action_id)
        if action is None:
            logger.warning("unknown_notification_action", action_id=action_id)
            return False
        if self._handler is None:
            logger.warning("no_notification_handler", action_id=action_id)
            return False

        self._handler(action, self.entity_id_from(entity_id))
        return True
