"""Answer recording for running activities."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from quizroom.domain.activities import models, state
from quizroom.domain.activities.catalog import QuizCatalog
from quizroom.domain.activities.exceptions import InvalidInput, NotFound, Unauthorized
from quizroom.domain.activities.repository import ActivitiesRepository
from quizroom.domain.activities.scoring import AlwaysCorrectPolicy, ScoringPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def is_empty_answer(value: Any) -> bool:
	# 0 and False are legitimate answers; only absent or blank values are empty.
	if value is None:
		return True
	if isinstance(value, str):
		return not value.strip()
	if isinstance(value, (list, tuple, dict, set)):
		return len(value) == 0
	return False


class AnswerStore:
	def __init__(
		self,
		repository: ActivitiesRepository,
		catalog: QuizCatalog,
		*,
		scoring: ScoringPolicy | None = None,
		state_machine: state.ActivityStateMachine | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repository
		self._catalog = catalog
		self._scoring = scoring or AlwaysCorrectPolicy()
		self._state = state_machine or state.ActivityStateMachine()
		self._clock = clock or _utcnow

	@property
	def scoring(self) -> ScoringPolicy:
		return self._scoring

	async def upsert_answer(
		self,
		activity_id: int,
		student_id: int,
		question_id: int,
		value: Any,
		*,
		admit: Optional[Callable[[], Awaitable[None]]] = None,
	) -> models.Answer:
		"""Record ``value`` for the key, replacing any earlier submission.

		Correctness is recomputed on every call. Status is read from the
		activity as stored right now; students may only answer while it is
		``started``. ``admit`` runs once every check has passed, right before
		the write, so rejected submissions never reach it.
		"""
		if is_empty_answer(value):
			raise InvalidInput("empty_answer", message="No answer given")
		activity = await self._repo.get_activity(activity_id)
		if activity is None:
			raise NotFound("activity_not_found", message="Activity not found")
		now = self._clock()
		current = self._state.status(activity, now)
		if current != state.STARTED:
			raise Unauthorized(
				f"not_accepting_answers:{current}",
				message="Answers are only accepted while the activity is running",
			)
		question = await self._question(activity.quiz_id, question_id)
		if admit is not None:
			await admit()
		is_correct = bool(self._scoring.score(question, value))
		answer = models.Answer(
			activity_id=activity.id,
			student_id=student_id,
			question_id=question.id,
			value=value,
			is_correct=is_correct,
			created_at=now,
			updated_at=now,
		)
		stored = await self._repo.upsert_answer(answer)
		logger.info(
			"answer_recorded",
			extra={"activity_id": activity.id, "student_id": student_id, "question_id": question.id},
		)
		return stored

	async def answers_for(self, activity_id: int, student_id: int) -> Dict[int, models.Answer]:
		answers = await self._repo.list_answers(activity_id, student_id)
		return {answer.question_id: answer for answer in answers}

	async def all_answers(self, activity_id: int) -> List[models.Answer]:
		return await self._repo.list_answers(activity_id)

	async def _question(self, quiz_id: int, question_id: int) -> models.Question:
		question = await self._catalog.question(quiz_id, question_id)
		if question is not None:
			return question
		raise NotFound("question_not_found", message="Question is not part of this activity's quiz")
