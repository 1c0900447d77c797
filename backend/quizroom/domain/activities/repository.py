"""Persistence for activities and answers.

Postgres is used when ``settings.postgres_url`` is configured, otherwise a
process-wide in-memory store. Both paths give the same guarantees:

- transitions run under a per-activity lock (``SELECT ... FOR UPDATE``) and
  re-evaluate their guards on the locked row, so two racing transitions
  cannot both succeed
- answers are upserted on ``(activity_id, student_id, question_id)``; the
  last write wins and no duplicate row is ever created
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional

import asyncpg

from quizroom.domain.activities import models
from quizroom.domain.activities.exceptions import NotFound, StorageFailure
from quizroom.infra import postgres
from quizroom.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

AnswerKey = tuple[int, int, int]
Mutation = Callable[[models.Activity], models.Activity]


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._activity_locks: Dict[int, asyncio.Lock] = {}
		self.activities: Dict[int, models.Activity] = {}
		self.answers: Dict[AnswerKey, models.Answer] = {}
		self.rosters: Dict[int, models.Roster] = {}
		self.questions: Dict[int, Dict[int, models.Question]] = {}
		self._activity_seq = 0
		self._answer_seq = 0

	async def reset(self) -> None:
		# Fresh locks: the previous ones may be bound to another event loop.
		self._lock = asyncio.Lock()
		self._activity_locks = {}
		self.activities.clear()
		self.answers.clear()
		self.rosters.clear()
		self.questions.clear()
		self._activity_seq = 0
		self._answer_seq = 0

	def activity_lock(self, activity_id: int) -> asyncio.Lock:
		lock = self._activity_locks.get(activity_id)
		if lock is None:
			lock = self._activity_locks[activity_id] = asyncio.Lock()
		return lock

	async def create_activity(self, activity: models.Activity) -> models.Activity:
		async with self._lock:
			self._activity_seq += 1
			stored = replace(activity, id=self._activity_seq)
			self.activities[stored.id] = stored
			return replace(stored)

	async def get_activity(self, activity_id: int) -> Optional[models.Activity]:
		async with self._lock:
			activity = self.activities.get(activity_id)
			return replace(activity) if activity else None

	async def transition(self, activity_id: int, mutate: Mutation) -> models.Activity:
		async with self.activity_lock(activity_id):
			async with self._lock:
				current = self.activities.get(activity_id)
				if current is None:
					raise NotFound("activity_not_found", message="Activity not found")
				working = replace(current)
			updated = mutate(working)
			async with self._lock:
				self.activities[activity_id] = replace(updated)
			return updated

	async def delete_activity(self, activity_id: int, guard: Callable[[models.Activity], None]) -> models.Activity:
		async with self.activity_lock(activity_id):
			async with self._lock:
				current = self.activities.get(activity_id)
				if current is None:
					raise NotFound("activity_not_found", message="Activity not found")
				snapshot = replace(current)
			guard(snapshot)
			async with self._lock:
				self.activities.pop(activity_id, None)
				for key in [key for key in self.answers if key[0] == activity_id]:
					del self.answers[key]
				self._activity_locks.pop(activity_id, None)
			return snapshot

	async def list_activities(
		self,
		*,
		owner_id: Optional[int],
		roster_ids: Optional[Iterable[int]],
		include_hidden: bool,
	) -> List[models.Activity]:
		roster_filter = set(roster_ids) if roster_ids is not None else None
		async with self._lock:
			items = [
				replace(act)
				for act in self.activities.values()
				if (owner_id is None or act.owner_id == owner_id)
				and (roster_filter is None or act.roster_id in roster_filter)
				and (include_hidden or not act.hidden)
			]
		return sorted(items, key=lambda act: (act.updated_at, act.id), reverse=True)

	async def upsert_answer(self, answer: models.Answer) -> models.Answer:
		async with self._lock:
			existing = self.answers.get(answer.key)
			if existing is None:
				self._answer_seq += 1
				stored = replace(answer, id=self._answer_seq)
			else:
				stored = replace(
					existing,
					value=answer.value,
					is_correct=answer.is_correct,
					updated_at=answer.updated_at,
				)
			self.answers[answer.key] = stored
			return replace(stored)

	async def list_answers(self, activity_id: int, student_id: Optional[int]) -> List[models.Answer]:
		async with self._lock:
			return [
				replace(ans)
				for (aid, sid, _), ans in self.answers.items()
				if aid == activity_id and (student_id is None or sid == student_id)
			]


_MEMORY = _MemoryStore()


def memory_store() -> _MemoryStore:
	return _MEMORY


async def reset_memory_state() -> None:
	await _MEMORY.reset()


@asynccontextmanager
async def storage_errors(op: str) -> AsyncIterator[None]:
	"""Surface driver/connection failures as StorageFailure."""
	try:
		yield
	except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
		obs_metrics.inc_storage_failure(op)
		logger.error("storage_failure", extra={"op": op, "error": type(exc).__name__})
		raise StorageFailure(f"storage_failure:{op}", message="Storage is unavailable") from exc


class ActivitiesRepository:
	async def _pool_or_none(self) -> Optional[asyncpg.Pool]:
		if not postgres.is_configured():
			return None
		async with storage_errors("connect"):
			return await postgres.get_pool()

	async def create_activity(self, activity: models.Activity) -> models.Activity:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.create_activity(activity)
		async with storage_errors("create_activity"):
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					INSERT INTO activities (
						owner_id, roster_id, quiz_id, duration, shuffle_questions,
						shuffle_propositions, seed, hidden, created_at, updated_at
					)
					VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10)
					RETURNING *
					""",
					activity.owner_id,
					activity.roster_id,
					activity.quiz_id,
					activity.duration,
					activity.shuffle_questions,
					activity.shuffle_propositions,
					activity.seed,
					activity.hidden,
					activity.created_at,
					activity.updated_at,
				)
		return _row_to_activity(row)

	async def get_activity(self, activity_id: int) -> Optional[models.Activity]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_activity(activity_id)
		async with storage_errors("get_activity"):
			async with pool.acquire() as conn:
				row = await conn.fetchrow("SELECT * FROM activities WHERE id=$1", activity_id)
		if not row:
			return None
		return _row_to_activity(row)

	async def transition(self, activity_id: int, mutate: Mutation) -> models.Activity:
		"""Lock the activity, let ``mutate`` check and apply, then persist."""
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.transition(activity_id, mutate)
		async with storage_errors("transition"):
			async with pool.acquire() as conn:
				async with conn.transaction():
					row = await conn.fetchrow(
						"SELECT * FROM activities WHERE id=$1 FOR UPDATE",
						activity_id,
					)
					if row is None:
						raise NotFound("activity_not_found", message="Activity not found")
					updated = mutate(_row_to_activity(row))
					await conn.execute(
						"""
						UPDATE activities
						SET opened_at=$2, started_at=$3, completed_at=$4, hidden=$5, updated_at=$6
						WHERE id=$1
						""",
						updated.id,
						updated.opened_at,
						updated.started_at,
						updated.completed_at,
						updated.hidden,
						updated.updated_at,
					)
		return updated

	async def delete_activity(self, activity_id: int, guard: Callable[[models.Activity], None]) -> models.Activity:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.delete_activity(activity_id, guard)
		async with storage_errors("delete_activity"):
			async with pool.acquire() as conn:
				async with conn.transaction():
					row = await conn.fetchrow(
						"SELECT * FROM activities WHERE id=$1 FOR UPDATE",
						activity_id,
					)
					if row is None:
						raise NotFound("activity_not_found", message="Activity not found")
					snapshot = _row_to_activity(row)
					guard(snapshot)
					# activity_answers rows cascade
					await conn.execute("DELETE FROM activities WHERE id=$1", activity_id)
		return snapshot

	async def list_activities(
		self,
		*,
		owner_id: Optional[int] = None,
		roster_ids: Optional[Iterable[int]] = None,
		include_hidden: bool = True,
	) -> List[models.Activity]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_activities(
				owner_id=owner_id,
				roster_ids=roster_ids,
				include_hidden=include_hidden,
			)
		roster_list = list(roster_ids) if roster_ids is not None else None
		async with storage_errors("list_activities"):
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"""
					SELECT * FROM activities
					WHERE ($1::bigint IS NULL OR owner_id = $1)
					  AND ($2::bigint[] IS NULL OR roster_id = ANY($2::bigint[]))
					  AND ($3 OR NOT hidden)
					ORDER BY updated_at DESC, id DESC
					""",
					owner_id,
					roster_list,
					include_hidden,
				)
		return [_row_to_activity(row) for row in rows]

	async def upsert_answer(self, answer: models.Answer) -> models.Answer:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.upsert_answer(answer)
		async with storage_errors("upsert_answer"):
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					INSERT INTO activity_answers (
						activity_id, student_id, question_id, value, is_correct, created_at, updated_at
					)
					VALUES ($1,$2,$3,$4::jsonb,$5,$6,$7)
					ON CONFLICT (activity_id, student_id, question_id)
					DO UPDATE SET value=EXCLUDED.value, is_correct=EXCLUDED.is_correct, updated_at=EXCLUDED.updated_at
					RETURNING *
					""",
					answer.activity_id,
					answer.student_id,
					answer.question_id,
					json.dumps(answer.value),
					answer.is_correct,
					answer.created_at,
					answer.updated_at,
				)
		return _row_to_answer(row)

	async def list_answers(self, activity_id: int, student_id: Optional[int] = None) -> List[models.Answer]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_answers(activity_id, student_id)
		async with storage_errors("list_answers"):
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"""
					SELECT * FROM activity_answers
					WHERE activity_id=$1 AND ($2::bigint IS NULL OR student_id = $2)
					ORDER BY id
					""",
					activity_id,
					student_id,
				)
		return [_row_to_answer(row) for row in rows]


def _row_to_activity(row: asyncpg.Record) -> models.Activity:
	return models.Activity(
		id=int(row["id"]),
		owner_id=int(row["owner_id"]),
		roster_id=int(row["roster_id"]),
		quiz_id=int(row["quiz_id"]),
		duration=int(row["duration"]),
		seed=int(row["seed"]),
		shuffle_questions=bool(row["shuffle_questions"]),
		shuffle_propositions=bool(row["shuffle_propositions"]),
		opened_at=row.get("opened_at"),
		started_at=row.get("started_at"),
		completed_at=row.get("completed_at"),
		hidden=bool(row["hidden"]),
		created_at=row["created_at"],
		updated_at=row["updated_at"],
	)


def _row_to_answer(row: asyncpg.Record) -> models.Answer:
	value = row["value"]
	if isinstance(value, str):
		value = json.loads(value)
	return models.Answer(
		id=int(row["id"]),
		activity_id=int(row["activity_id"]),
		student_id=int(row["student_id"]),
		question_id=int(row["question_id"]),
		value=value,
		is_correct=bool(row["is_correct"]),
		created_at=row["created_at"],
		updated_at=row["updated_at"],
	)
