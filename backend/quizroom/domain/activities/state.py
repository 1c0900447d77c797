"""Activity lifecycle: derived status and owner-gated transitions.

Status is never stored. It is recomputed from the activity's timestamps on
every read:

- ``finished`` if ``completed_at`` is set, or ``started_at`` is set and at
  least ``duration`` seconds have elapsed
- ``started`` if ``started_at`` is set
- ``opened`` if ``opened_at`` is set
- ``idle`` otherwise

``hidden`` is an orthogonal flag. Each transition is declared once in
``TRANSITIONS``; guards are evaluated in the same order for all of them:
owner, allowed source status, hidden flag. A failed guard raises before the
activity is touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional

from quizroom.domain.activities import models
from quizroom.domain.activities.exceptions import Forbidden, InvalidTransition

IDLE = "idle"
OPENED = "opened"
STARTED = "started"
FINISHED = "finished"


def derive_status(
	*,
	opened_at: Optional[datetime],
	started_at: Optional[datetime],
	completed_at: Optional[datetime],
	duration: int,
	now: datetime,
) -> str:
	if completed_at is not None:
		return FINISHED
	if started_at is not None:
		if (now - started_at).total_seconds() >= duration:
			return FINISHED
		return STARTED
	if opened_at is not None:
		return OPENED
	return IDLE


def status_of(activity: models.Activity, now: datetime) -> str:
	return derive_status(
		opened_at=activity.opened_at,
		started_at=activity.started_at,
		completed_at=activity.completed_at,
		duration=activity.duration,
		now=now,
	)


def remaining_seconds(activity: models.Activity, now: datetime) -> int:
	if activity.started_at is None:
		return int(activity.duration)
	if activity.completed_at is not None:
		return 0
	remaining = activity.duration - activity.elapsed_seconds(now)
	return max(0, int(remaining))


def _set_opened(activity: models.Activity, now: datetime) -> None:
	activity.opened_at = now


def _clear_opened(activity: models.Activity, now: datetime) -> None:
	activity.opened_at = None


def _set_started(activity: models.Activity, now: datetime) -> None:
	activity.started_at = now


def _set_completed(activity: models.Activity, now: datetime) -> None:
	activity.completed_at = now


def _set_hidden(activity: models.Activity, now: datetime) -> None:
	activity.hidden = True


def _set_visible(activity: models.Activity, now: datetime) -> None:
	activity.hidden = False


def _no_change(activity: models.Activity, now: datetime) -> None:
	return None


@dataclass(frozen=True, slots=True)
class Transition:
	"""One row of the transition table.

	``require_hidden`` is ``False`` when the activity must be visible, ``True``
	when it must be hidden, ``None`` when the flag is irrelevant.
	"""

	name: str
	from_states: FrozenSet[str]
	apply: Callable[[models.Activity, datetime], None]
	owner_message: str
	state_message: str
	require_hidden: Optional[bool] = None
	hidden_message: str = ""


TRANSITIONS: Dict[str, Transition] = {
	t.name: t
	for t in (
		Transition(
			name="open",
			from_states=frozenset({IDLE}),
			apply=_set_opened,
			owner_message="Only the owner of an activity can open an activity",
			state_message="Only idle activities can be opened",
			require_hidden=False,
			hidden_message="Cannot open a hidden activity",
		),
		Transition(
			name="close",
			from_states=frozenset({OPENED}),
			apply=_clear_opened,
			owner_message="Only the owner of an activity can close an activity",
			state_message="Only opened activities can be closed",
		),
		Transition(
			name="start",
			from_states=frozenset({IDLE, OPENED}),
			apply=_set_started,
			owner_message="Only the owner of an activity can start it",
			state_message="Activity already started or completed",
			require_hidden=False,
			hidden_message="Cannot start a hidden activity",
		),
		Transition(
			name="finish",
			from_states=frozenset({STARTED}),
			apply=_set_completed,
			owner_message="Only the owner of an activity can finish it",
			state_message="Only running activities can be finished",
		),
		Transition(
			name="hide",
			from_states=frozenset({FINISHED}),
			apply=_set_hidden,
			owner_message="Only the owner of an activity can change the visibility",
			state_message="Only ended activities can be hidden",
			require_hidden=False,
			hidden_message="Activity already hidden",
		),
		Transition(
			name="show",
			from_states=frozenset({IDLE, OPENED, STARTED, FINISHED}),
			apply=_set_visible,
			owner_message="Only the owner of an activity can change the visibility",
			state_message="Activity cannot be shown",
			require_hidden=True,
			hidden_message="Activity already visible",
		),
		Transition(
			name="delete",
			from_states=frozenset({IDLE}),
			apply=_no_change,
			owner_message="Only the owner can delete this activity",
			state_message="Only idle activities can be deleted",
		),
	)
}


class ActivityStateMachine:
	"""Checks and applies lifecycle transitions on an in-memory Activity."""

	def __init__(self, transitions: Dict[str, Transition] | None = None) -> None:
		self._transitions = transitions or TRANSITIONS

	def status(self, activity: models.Activity, now: datetime) -> str:
		return status_of(activity, now)

	def check(self, name: str, activity: models.Activity, caller_id: int, now: datetime) -> Transition:
		transition = self._transitions[name]
		if not activity.is_owned_by(caller_id):
			raise Forbidden("not_owner", message=transition.owner_message)
		current = status_of(activity, now)
		if current not in transition.from_states:
			raise InvalidTransition(f"invalid_state:{current}", message=transition.state_message)
		if transition.require_hidden is not None and activity.hidden != transition.require_hidden:
			code = "hidden" if activity.hidden else "not_hidden"
			raise InvalidTransition(code, message=transition.hidden_message)
		return transition

	def apply(self, name: str, activity: models.Activity, caller_id: int, now: datetime) -> models.Activity:
		transition = self.check(name, activity, caller_id, now)
		transition.apply(activity, now)
		activity.updated_at = now
		return activity
