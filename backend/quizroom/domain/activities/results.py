"""Teacher-facing results matrix."""

from __future__ import annotations

from datetime import datetime

from quizroom.domain.activities import models, state
from quizroom.domain.activities.answers import AnswerStore
from quizroom.domain.activities.catalog import QuizCatalog, RosterDirectory
from quizroom.domain.activities.exceptions import InvalidState
from quizroom.domain.activities.policy import ensure_roster


class ResultsAggregator:
	"""Student x question correctness for a finished, visible activity.

	Rows follow roster membership order and columns ascending question id, so
	the matrix never depends on any student's shuffle.
	"""

	def __init__(
		self,
		catalog: QuizCatalog,
		rosters: RosterDirectory,
		answers: AnswerStore,
		*,
		state_machine: state.ActivityStateMachine | None = None,
	) -> None:
		self._catalog = catalog
		self._rosters = rosters
		self._answers = answers
		self._state = state_machine or state.ActivityStateMachine()

	async def matrix(self, activity: models.Activity, now: datetime) -> models.ResultsMatrix:
		current = self._state.status(activity, now)
		if current != state.FINISHED:
			raise InvalidState(f"invalid_state:{current}", message="Results are available once the activity has ended")
		if activity.hidden:
			raise InvalidState("hidden", message="Results of a hidden activity are not available")

		roster = ensure_roster(await self._rosters.roster(activity.roster_id))
		question_ids = sorted(question.id for question in await self._catalog.questions(activity.quiz_id))
		stored = {
			(answer.student_id, answer.question_id): answer
			for answer in await self._answers.all_answers(activity.id)
		}

		cells = {}
		for student_id in roster.student_ids:
			row = {}
			for question_id in question_ids:
				answer = stored.get((student_id, question_id))
				if answer is None:
					row[question_id] = models.ResultCell()
				else:
					row[question_id] = models.ResultCell(answer=answer.value, is_correct=answer.is_correct)
			cells[student_id] = row

		return models.ResultsMatrix(
			activity_id=activity.id,
			student_ids=list(roster.student_ids),
			question_ids=question_ids,
			cells=cells,
		)
