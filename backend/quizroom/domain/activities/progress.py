"""Per-student progress through an activity."""

from __future__ import annotations

from datetime import datetime
from typing import List

from quizroom.domain.activities import models, state
from quizroom.domain.activities.answers import AnswerStore
from quizroom.domain.activities.catalog import QuizCatalog
from quizroom.domain.activities.exceptions import Unauthorized
from quizroom.domain.activities.ordering import QuestionOrderer


def percent_complete(answered: int, total: int) -> int:
	if total <= 0:
		return 0
	# Halves round up: 1 of 8 answered is 13%.
	return (answered * 200 + total) // (total * 2)


class ProgressCalculator:
	def __init__(
		self,
		catalog: QuizCatalog,
		answers: AnswerStore,
		*,
		orderer: QuestionOrderer | None = None,
		state_machine: state.ActivityStateMachine | None = None,
	) -> None:
		self._catalog = catalog
		self._answers = answers
		self._orderer = orderer or QuestionOrderer()
		self._state = state_machine or state.ActivityStateMachine()

	async def ordered_questions(self, activity: models.Activity, student_id: int) -> List[models.Question]:
		"""Quiz questions in the order ``student_id`` sees them."""
		questions = await self._catalog.questions(activity.quiz_id)
		by_id = {question.id: question for question in questions}
		order = self._orderer.order(
			list(by_id),
			shuffle=activity.shuffle_questions,
			seed=activity.seed,
			student_id=student_id,
			quiz_id=activity.quiz_id,
		)
		return [by_id[qid] for qid in order]

	def ensure_available(self, activity: models.Activity, now: datetime) -> None:
		current = self._state.status(activity, now)
		if current not in (state.STARTED, state.FINISHED):
			raise Unauthorized(
				f"not_available:{current}",
				message="Questions are only available once the activity has started",
			)

	async def progress(self, activity: models.Activity, student_id: int, now: datetime) -> models.Progress:
		self.ensure_available(activity, now)
		questions = await self.ordered_questions(activity, student_id)
		answers = await self._answers.answers_for(activity.id, student_id)

		items: List[models.QuestionProgress] = []
		current_question_id = None
		answered = 0
		for position, question in enumerate(questions, start=1):
			answer = answers.get(question.id)
			item = models.QuestionProgress(
				position=position,
				question_id=question.id,
				name=question.name,
				content=question.content,
				answer=answer.value if answer is not None else None,
			)
			if item.answered:
				answered += 1
			elif current_question_id is None:
				current_question_id = question.id
			items.append(item)

		return models.Progress(
			activity_id=activity.id,
			student_id=student_id,
			questions=items,
			current_question_id=current_question_id,
			remaining_seconds=state.remaining_seconds(activity, now),
			answered_count=answered,
			total_count=len(items),
			percent=percent_complete(answered, len(items)),
		)
