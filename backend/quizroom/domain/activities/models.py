"""Domain models for classroom quiz activities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


ActivityStatus = str
QuestionType = str


@dataclass(slots=True)
class Activity:
	"""Core persisted activity record.

	Status is not stored; see ``state.derive_status``.
	"""

	id: int
	owner_id: int
	roster_id: int
	quiz_id: int
	duration: int
	seed: int
	created_at: datetime
	updated_at: datetime
	shuffle_questions: bool = False
	shuffle_propositions: bool = False
	opened_at: Optional[datetime] = None
	started_at: Optional[datetime] = None
	completed_at: Optional[datetime] = None
	hidden: bool = False

	def is_owned_by(self, user_id: int) -> bool:
		return self.owner_id == user_id

	def elapsed_seconds(self, now: datetime) -> float:
		if self.started_at is None:
			return 0.0
		return max(0.0, (now - self.started_at).total_seconds())


@dataclass(slots=True)
class Question:
	"""A quiz question as exposed by the quiz catalog. Read-only here."""

	id: int
	quiz_id: int
	name: str
	content: str
	type: QuestionType = "free-form"
	answer: Any = None
	options: Dict[str, Any] = field(default_factory=dict)
	difficulty: Optional[str] = None
	explanation: Optional[str] = None


@dataclass(slots=True)
class Roster:
	id: int
	teacher_id: int
	name: str = ""
	student_ids: List[int] = field(default_factory=list)

	def includes(self, student_id: int) -> bool:
		return student_id in self.student_ids


@dataclass(slots=True)
class Answer:
	activity_id: int
	student_id: int
	question_id: int
	value: Any
	is_correct: bool
	created_at: datetime
	updated_at: datetime
	id: Optional[int] = None

	@property
	def key(self) -> tuple[int, int, int]:
		return (self.activity_id, self.student_id, self.question_id)


@dataclass(slots=True)
class QuestionProgress:
	position: int
	question_id: int
	name: str
	content: str
	answer: Any = None

	@property
	def answered(self) -> bool:
		return self.answer is not None


@dataclass(slots=True)
class Progress:
	activity_id: int
	student_id: int
	questions: List[QuestionProgress]
	current_question_id: Optional[int]
	remaining_seconds: int
	answered_count: int
	total_count: int
	percent: int

	@property
	def current_position(self) -> Optional[int]:
		for item in self.questions:
			if item.question_id == self.current_question_id:
				return item.position
		return None


@dataclass(slots=True)
class ResultCell:
	answer: Any = None
	is_correct: bool = False


@dataclass(slots=True)
class ResultsMatrix:
	activity_id: int
	student_ids: List[int]
	question_ids: List[int]
	cells: Dict[int, Dict[int, ResultCell]] = field(default_factory=dict)

	def cell(self, student_id: int, question_id: int) -> ResultCell:
		return self.cells[student_id][question_id]

	def to_payload(self) -> dict[str, Any]:
		return {
			"activity_id": self.activity_id,
			"students": list(self.student_ids),
			"questions": list(self.question_ids),
			"matrix": [
				{
					"student_id": student_id,
					"answers": [
						{
							"question_id": question_id,
							"answer": self.cells[student_id][question_id].answer,
							"is_correct": self.cells[student_id][question_id].is_correct,
						}
						for question_id in self.question_ids
					],
				}
				for student_id in self.student_ids
			],
		}
