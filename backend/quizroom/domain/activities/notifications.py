"""Change notification sinks for activity lifecycle events."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from quizroom.domain.activities import outbox, sockets

ACTIVITY_CREATED = "activity:created"
ACTIVITY_UPDATED = "activity:updated"
ACTIVITY_DELETED = "activity:deleted"


class ActivityEventSink(Protocol):
	async def publish(
		self,
		event_type: str,
		activity_id: int,
		snapshot: Optional[Dict[str, Any]],
		*,
		roster_id: Optional[int] = None,
	) -> None:
		...


class BroadcastSink:
	"""Push to Socket.IO rooms and append to the Redis events stream.

	``snapshot`` is ``None`` for a deleted activity; subscribers receive the
	activity id with a null ``activity``.
	"""

	async def publish(
		self,
		event_type: str,
		activity_id: int,
		snapshot: Optional[Dict[str, Any]],
		*,
		roster_id: Optional[int] = None,
	) -> None:
		payload = {"activity_id": activity_id, "activity": snapshot}
		if snapshot is not None and snapshot.get("transition"):
			payload["transition"] = snapshot["transition"]
		await sockets.emit_activity_event(
			event_type,
			activity_id=activity_id,
			roster_id=roster_id,
			payload=payload,
		)
		meta = {}
		if snapshot is not None:
			meta["status"] = snapshot.get("status")
			meta["transition"] = snapshot.get("transition")
		await outbox.append_activity_event(
			event_type,
			activity_id=activity_id,
			roster_id=roster_id,
			owner_id=snapshot.get("owner_id") if snapshot else None,
			meta=meta,
		)
