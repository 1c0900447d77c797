"""Pydantic schemas for classroom quiz activities."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from quizroom.domain.activities import models
from quizroom.domain.activities.policy import SEED_MAX

ActivityStatus = Literal["idle", "opened", "started", "finished"]


class CreateActivityRequest(BaseModel):
	roster_id: int
	quiz_id: int
	duration: Optional[int] = Field(default=None, ge=10)
	shuffle_questions: bool = False
	shuffle_propositions: bool = False
	seed: Optional[int] = Field(default=None, ge=0, le=SEED_MAX)


class ActivitySummary(BaseModel):
	id: int
	owner_id: int
	roster_id: int
	quiz_id: int
	duration: int
	shuffle_questions: bool
	shuffle_propositions: bool
	seed: int
	status: ActivityStatus
	hidden: bool
	opened_at: Optional[datetime] = None
	started_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None
	remaining_seconds: int
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_activity(cls, activity: models.Activity, *, status: str, remaining_seconds: int) -> "ActivitySummary":
		return cls(
			id=activity.id,
			owner_id=activity.owner_id,
			roster_id=activity.roster_id,
			quiz_id=activity.quiz_id,
			duration=activity.duration,
			shuffle_questions=activity.shuffle_questions,
			shuffle_propositions=activity.shuffle_propositions,
			seed=activity.seed,
			status=status,
			hidden=activity.hidden,
			opened_at=activity.opened_at,
			started_at=activity.started_at,
			completed_at=activity.completed_at,
			remaining_seconds=remaining_seconds,
			created_at=activity.created_at,
			updated_at=activity.updated_at,
		)


class ActivityList(BaseModel):
	count: int
	activities: List[ActivitySummary] = Field(default_factory=list)


class RosterSummary(BaseModel):
	id: int
	teacher_id: int
	name: str = ""
	student_ids: List[int] = Field(default_factory=list)


class ProgressItem(BaseModel):
	position: int
	question_id: int
	name: str
	content: str
	answered: bool
	answer: Any = None


class ProgressResponse(BaseModel):
	activity_id: int
	student_id: int
	questions: List[ProgressItem]
	current_question_id: Optional[int] = None
	current_position: Optional[int] = None
	remaining_seconds: int
	answered_count: int
	total_count: int
	percent: int

	@classmethod
	def from_progress(cls, progress: models.Progress) -> "ProgressResponse":
		return cls(
			activity_id=progress.activity_id,
			student_id=progress.student_id,
			questions=[
				ProgressItem(
					position=item.position,
					question_id=item.question_id,
					name=item.name,
					content=item.content,
					answered=item.answered,
					answer=item.answer,
				)
				for item in progress.questions
			],
			current_question_id=progress.current_question_id,
			current_position=progress.current_position,
			remaining_seconds=progress.remaining_seconds,
			answered_count=progress.answered_count,
			total_count=progress.total_count,
			percent=progress.percent,
		)


class QuestionView(BaseModel):
	activity_id: int
	position: int
	total: int
	question_id: int
	name: str
	content: str
	type: str
	options: Dict[str, Any] = Field(default_factory=dict)
	# display index -> canonical proposition index, present when propositions are shuffled
	proposition_order: Optional[List[int]] = None
	answer: Any = None
	remaining_seconds: int


class SubmitAnswerRequest(BaseModel):
	question_id: Optional[int] = None
	position: Optional[int] = Field(default=None, ge=1)
	value: Any = None


class AnswerResult(BaseModel):
	activity_id: int
	student_id: int
	question_id: int
	answer: Any
	is_correct: bool
	updated_at: datetime

	@classmethod
	def from_answer(cls, answer: models.Answer) -> "AnswerResult":
		return cls(
			activity_id=answer.activity_id,
			student_id=answer.student_id,
			question_id=answer.question_id,
			answer=answer.value,
			is_correct=answer.is_correct,
			updated_at=answer.updated_at,
		)


class ResultCellView(BaseModel):
	question_id: int
	answer: Any = None
	is_correct: bool = False


class ResultRow(BaseModel):
	student_id: int
	answers: List[ResultCellView]


class ResultsResponse(BaseModel):
	activity_id: int
	students: List[int]
	questions: List[int]
	matrix: List[ResultRow]

	@classmethod
	def from_matrix(cls, matrix: models.ResultsMatrix) -> "ResultsResponse":
		return cls.model_validate(matrix.to_payload())
