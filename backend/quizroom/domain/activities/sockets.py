"""Socket.IO namespace broadcasting activity changes."""

from __future__ import annotations

from typing import Any, Dict, Optional

import socketio
from fastapi import HTTPException

from quizroom.domain.activities import models
from quizroom.domain.activities.catalog import RosterDirectory
from quizroom.domain.activities.repository import ActivitiesRepository
from quizroom.infra.auth import AuthenticatedUser, verify_access_jwt
from quizroom.obs import metrics as obs_metrics
from quizroom.settings import settings

_namespace: "ActivitiesNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _authenticate(environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
	scope = environ.get("asgi.scope", environ)
	payload = auth or {}
	token = payload.get("token")
	if token:
		try:
			return verify_access_jwt(str(token))
		except HTTPException as exc:
			raise ConnectionRefusedError("invalid_token") from exc
	user_id = payload.get("userId") or _header(scope, "x-user-id")
	if settings.is_dev() and user_id:
		try:
			return AuthenticatedUser(id=int(user_id))
		except (TypeError, ValueError) as exc:
			raise ConnectionRefusedError("invalid user id") from exc
	raise ConnectionRefusedError("missing credentials")


def _may_watch(user: AuthenticatedUser, roster: Optional[models.Roster]) -> bool:
	return roster is not None and (roster.teacher_id == user.id or roster.includes(user.id))


def _activity_id(payload: Any) -> Optional[int]:
	if not isinstance(payload, dict):
		return None
	try:
		return int(payload.get("activity_id"))
	except (TypeError, ValueError):
		return None


class ActivitiesNamespace(socketio.AsyncNamespace):
	def __init__(self) -> None:
		super().__init__("/activities")
		self._sessions: Dict[str, AuthenticatedUser] = {}
		self._repo = ActivitiesRepository()
		self._rosters = RosterDirectory()

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		user = _authenticate(environ, auth)
		obs_metrics.socket_connected(self.namespace)
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("activities:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		user = self._sessions.pop(sid, None)
		if user:
			obs_metrics.socket_disconnected(self.namespace)
			await self.leave_room(sid, self.user_room(user.id))

	async def on_activity_join(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "activity_join")
		user = self._sessions.get(sid)
		if not user:
			raise ConnectionRefusedError("unauthenticated")
		activity_id = _activity_id(payload)
		if activity_id is None:
			return
		activity = await self._repo.get_activity(activity_id)
		if activity is None:
			return
		if activity.owner_id != user.id and not _may_watch(user, await self._rosters.roster(activity.roster_id)):
			await self._deny(sid, "activity", activity_id)
			return
		await self.enter_room(sid, self.activity_room(activity_id))

	async def on_activity_leave(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "activity_leave")
		if sid not in self._sessions:
			raise ConnectionRefusedError("unauthenticated")
		activity_id = _activity_id(payload)
		if activity_id is None:
			return
		await self.leave_room(sid, self.activity_room(activity_id))

	async def on_roster_join(self, sid: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, "roster_join")
		user = self._sessions.get(sid)
		if not user:
			raise ConnectionRefusedError("unauthenticated")
		try:
			roster_id = int(payload.get("roster_id"))
		except (AttributeError, TypeError, ValueError):
			return
		if not _may_watch(user, await self._rosters.roster(roster_id)):
			await self._deny(sid, "roster", roster_id)
			return
		await self.enter_room(sid, self.roster_room(roster_id))

	async def _deny(self, sid: str, scope: str, target_id: int) -> None:
		await self.emit(
			"activities:error",
			{"code": "not_roster_member", "scope": scope, "id": target_id},
			room=sid,
		)

	@staticmethod
	def user_room(user_id: int) -> str:
		return f"user:{user_id}"

	@staticmethod
	def activity_room(activity_id: int) -> str:
		return f"activity:{activity_id}"

	@staticmethod
	def roster_room(roster_id: int) -> str:
		return f"roster:{roster_id}"


def set_namespace(namespace: ActivitiesNamespace | None) -> None:
	global _namespace
	_namespace = namespace


async def emit_activity_event(
	event: str,
	*,
	activity_id: int,
	roster_id: Optional[int],
	payload: dict,
) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, event)
	await _namespace.emit(event, payload, room=ActivitiesNamespace.activity_room(activity_id))
	if roster_id is not None:
		await _namespace.emit(event, payload, room=ActivitiesNamespace.roster_room(roster_id))
