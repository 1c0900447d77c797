"""Read-only access to quizzes and rosters owned by other parts of the system."""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Optional

import asyncpg

from quizroom.domain.activities import models
from quizroom.domain.activities.repository import memory_store, storage_errors
from quizroom.infra import postgres


def _decode_json(value: Any, default: Any) -> Any:
	if value is None:
		return default
	if isinstance(value, str):
		return json.loads(value)
	return value


def _row_to_question(row: asyncpg.Record) -> models.Question:
	return models.Question(
		id=int(row["id"]),
		quiz_id=int(row["quiz_id"]),
		name=row["name"] or "",
		content=row["content"] or "",
		type=row["type"] or "free-form",
		answer=_decode_json(row["answer"], None),
		options=_decode_json(row["options"], {}),
		difficulty=row.get("difficulty"),
		explanation=row.get("explanation"),
	)


async def _pool_or_none() -> Optional[asyncpg.Pool]:
	if not postgres.is_configured():
		return None
	async with storage_errors("connect"):
		return await postgres.get_pool()


class QuizCatalog:
	async def questions(self, quiz_id: int) -> List[models.Question]:
		"""All questions of a quiz in ascending id order."""
		pool = await _pool_or_none()
		if pool is None:
			store = memory_store()
			return [store.questions[quiz_id][qid] for qid in sorted(store.questions.get(quiz_id, {}))]
		async with storage_errors("quiz_questions"):
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"SELECT * FROM quiz_questions WHERE quiz_id=$1 ORDER BY id",
					quiz_id,
				)
		return [_row_to_question(row) for row in rows]

	async def question(self, quiz_id: int, question_id: int) -> Optional[models.Question]:
		for question in await self.questions(quiz_id):
			if question.id == question_id:
				return question
		return None

	async def exists(self, quiz_id: int) -> bool:
		pool = await _pool_or_none()
		if pool is None:
			return quiz_id in memory_store().questions
		async with storage_errors("quiz_exists"):
			async with pool.acquire() as conn:
				found = await conn.fetchval("SELECT 1 FROM quizzes WHERE id=$1", quiz_id)
		return found is not None


class RosterDirectory:
	async def roster(self, roster_id: int) -> Optional[models.Roster]:
		pool = await _pool_or_none()
		if pool is None:
			return memory_store().rosters.get(roster_id)
		async with storage_errors("roster"):
			async with pool.acquire() as conn:
				row = await conn.fetchrow("SELECT * FROM rosters WHERE id=$1", roster_id)
				if row is None:
					return None
				members = await conn.fetch(
					"SELECT student_id FROM roster_members WHERE roster_id=$1 ORDER BY position, student_id",
					roster_id,
				)
		return models.Roster(
			id=int(row["id"]),
			teacher_id=int(row["teacher_id"]),
			name=row["name"] or "",
			student_ids=[int(member["student_id"]) for member in members],
		)

	async def roster_ids_for_student(self, student_id: int) -> List[int]:
		pool = await _pool_or_none()
		if pool is None:
			return sorted(r.id for r in memory_store().rosters.values() if r.includes(student_id))
		async with storage_errors("student_rosters"):
			async with pool.acquire() as conn:
				rows = await conn.fetch(
					"SELECT roster_id FROM roster_members WHERE student_id=$1 ORDER BY roster_id",
					student_id,
				)
		return [int(row["roster_id"]) for row in rows]


def seed_quiz(quiz_id: int, questions: Iterable[models.Question]) -> None:
	"""Register a quiz in the in-memory store (local runs and tests)."""
	bucket = memory_store().questions.setdefault(quiz_id, {})
	for question in questions:
		bucket[question.id] = question


def seed_roster(roster: models.Roster) -> None:
	memory_store().rosters[roster.id] = roster
