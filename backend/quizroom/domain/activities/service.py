"""Service orchestration for classroom quiz activities."""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from quizroom.domain.activities import models, notifications, policy, schemas, state
from quizroom.domain.activities.answers import AnswerStore
from quizroom.domain.activities.catalog import QuizCatalog, RosterDirectory
from quizroom.domain.activities.exceptions import NotFound
from quizroom.domain.activities.ordering import proposition_order
from quizroom.domain.activities.progress import ProgressCalculator
from quizroom.domain.activities.repository import ActivitiesRepository
from quizroom.domain.activities.results import ResultsAggregator
from quizroom.domain.activities.scoring import ScoringPolicy, build_policy
from quizroom.infra.auth import AuthenticatedUser
from quizroom.obs import metrics as obs_metrics
from quizroom.settings import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _now() -> datetime:
	return datetime.now(timezone.utc)


class ActivitiesService:
	def __init__(
		self,
		repository: ActivitiesRepository | None = None,
		*,
		catalog: QuizCatalog | None = None,
		rosters: RosterDirectory | None = None,
		sink: notifications.ActivityEventSink | None = None,
		scoring: ScoringPolicy | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repository or ActivitiesRepository()
		self._catalog = catalog or QuizCatalog()
		self._rosters = rosters or RosterDirectory()
		self._sink = sink or notifications.BroadcastSink()
		self._clock = clock or _now
		self._state = state.ActivityStateMachine()
		self._answers = AnswerStore(
			self._repo,
			self._catalog,
			scoring=scoring or build_policy(settings.scoring_policy),
			state_machine=self._state,
			clock=self._clock,
		)
		self._progress = ProgressCalculator(self._catalog, self._answers, state_machine=self._state)
		self._results = ResultsAggregator(self._catalog, self._rosters, self._answers, state_machine=self._state)

	# Lifecycle

	async def create_activity(
		self,
		owner_id: int,
		*,
		roster_id: int,
		quiz_id: int,
		duration: Optional[int] = None,
		shuffle_questions: bool = False,
		shuffle_propositions: bool = False,
		seed: Optional[int] = None,
	) -> schemas.ActivitySummary:
		duration = policy.validate_duration(duration)
		seed = policy.validate_seed(seed)
		roster = policy.ensure_roster(await self._rosters.roster(roster_id))
		policy.ensure_roster_teacher(roster, owner_id)
		if not await self._catalog.exists(quiz_id):
			raise NotFound("quiz_not_found", message="Quiz not found")
		await policy.enforce_create_limit(owner_id)

		now = self._clock()
		activity = await self._repo.create_activity(
			models.Activity(
				id=0,
				owner_id=owner_id,
				roster_id=roster.id,
				quiz_id=quiz_id,
				duration=duration,
				seed=seed if seed is not None else secrets.randbelow(policy.SEED_MAX + 1),
				shuffle_questions=bool(shuffle_questions),
				shuffle_propositions=bool(shuffle_propositions),
				created_at=now,
				updated_at=now,
			)
		)
		obs_metrics.inc_activity_created()
		logger.info(
			"activity_created",
			extra={"activity_id": activity.id, "roster_id": activity.roster_id, "quiz_id": activity.quiz_id},
		)
		summary = self._summary(activity, now)
		await self._notify(
			notifications.ACTIVITY_CREATED,
			activity.id,
			summary.model_dump(mode="json"),
			roster_id=activity.roster_id,
		)
		return summary

	async def open_activity(self, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
		return await self._transition("open", activity_id, caller_id)

	async def close_activity(self, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
		return await self._transition("close", activity_id, caller_id)

	async def start_activity(self, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
		return await self._transition("start", activity_id, caller_id)

	async def finish_activity(self, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
		return await self._transition("finish", activity_id, caller_id)

	async def hide_activity(self, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
		return await self._transition("hide", activity_id, caller_id)

	async def show_activity(self, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
		return await self._transition("show", activity_id, caller_id)

	async def delete_activity(self, activity_id: int, caller_id: int) -> None:
		def guard(activity: models.Activity) -> None:
			self._state.check("delete", activity, caller_id, self._clock())

		deleted = await self._repo.delete_activity(activity_id, guard)
		obs_metrics.inc_activity_transition("delete")
		logger.info("activity_deleted", extra={"activity_id": activity_id, "roster_id": deleted.roster_id})
		await self._notify(notifications.ACTIVITY_DELETED, activity_id, None, roster_id=deleted.roster_id)

	async def _transition(self, name: str, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
		def mutate(activity: models.Activity) -> models.Activity:
			# Evaluated on the locked row; a racing transition sees the new state.
			return self._state.apply(name, activity, caller_id, self._clock())

		updated = await self._repo.transition(activity_id, mutate)
		obs_metrics.inc_activity_transition(name)
		logger.info("activity_transition", extra={"activity_id": updated.id, "transition": name, "user_id": caller_id})
		summary = self._summary(updated, updated.updated_at)
		snapshot = summary.model_dump(mode="json")
		snapshot["transition"] = name
		await self._notify(notifications.ACTIVITY_UPDATED, updated.id, snapshot, roster_id=updated.roster_id)
		return summary

	# Reads

	async def get_activity(self, activity_id: int) -> schemas.ActivitySummary:
		activity = await self._require_activity(activity_id)
		return self._summary(activity, self._clock())

	async def list_activities(
		self,
		user: AuthenticatedUser,
		*,
		roster_id: Optional[int] = None,
		owned: bool = False,
	) -> schemas.ActivityList:
		"""Students see visible activities of their rosters; teachers see everything or their own."""
		if user.is_student and not user.is_teacher:
			roster_ids = await self._rosters.roster_ids_for_student(user.id)
			if roster_id is not None:
				roster_ids = [rid for rid in roster_ids if rid == roster_id]
			items = await self._repo.list_activities(roster_ids=roster_ids, include_hidden=False)
		else:
			items = await self._repo.list_activities(
				owner_id=user.id if owned else None,
				roster_ids=[roster_id] if roster_id is not None else None,
				include_hidden=True,
			)
		now = self._clock()
		summaries = [self._summary(activity, now) for activity in items]
		return schemas.ActivityList(count=len(summaries), activities=summaries)

	async def activity_roster(self, activity_id: int) -> schemas.RosterSummary:
		activity = await self._require_activity(activity_id)
		roster = policy.ensure_roster(await self._rosters.roster(activity.roster_id))
		return schemas.RosterSummary(
			id=roster.id,
			teacher_id=roster.teacher_id,
			name=roster.name,
			student_ids=list(roster.student_ids),
		)

	async def list_roster_activities(self, user: AuthenticatedUser, roster_id: int) -> schemas.ActivityList:
		policy.ensure_roster(await self._rosters.roster(roster_id))
		return await self.list_activities(user, roster_id=roster_id)

	# Students

	async def get_progress(self, activity_id: int, student_id: int) -> schemas.ProgressResponse:
		activity = await self._require_activity(activity_id)
		await self._require_member(activity, student_id)
		progress = await self._progress.progress(activity, student_id, self._clock())
		return schemas.ProgressResponse.from_progress(progress)

	async def get_question(self, activity_id: int, student_id: int, position: int) -> schemas.QuestionView:
		activity = await self._require_activity(activity_id)
		await self._require_member(activity, student_id)
		now = self._clock()
		self._progress.ensure_available(activity, now)
		questions = await self._progress.ordered_questions(activity, student_id)
		policy.ensure_position(position, len(questions))
		question = questions[position - 1]
		answers = await self._answers.answers_for(activity.id, student_id)
		answer = answers.get(question.id)
		options, order = self._present_options(activity, student_id, question)
		return schemas.QuestionView(
			activity_id=activity.id,
			position=position,
			total=len(questions),
			question_id=question.id,
			name=question.name,
			content=question.content,
			type=question.type,
			options=options,
			proposition_order=order,
			answer=answer.value if answer is not None else None,
			remaining_seconds=state.remaining_seconds(activity, now),
		)

	async def submit_answer(
		self,
		activity_id: int,
		student_id: int,
		question_id: int,
		value: Any,
	) -> schemas.AnswerResult:
		activity = await self._require_activity(activity_id)
		await self._require_member(activity, student_id)
		answer = await self._answers.upsert_answer(
			activity.id,
			student_id,
			question_id,
			value,
			admit=lambda: policy.enforce_submit_limit(student_id),
		)
		obs_metrics.inc_answer_submitted(answer.is_correct)
		return schemas.AnswerResult.from_answer(answer)

	async def submit_answer_at(
		self,
		activity_id: int,
		student_id: int,
		position: int,
		value: Any,
	) -> schemas.AnswerResult:
		activity = await self._require_activity(activity_id)
		await self._require_member(activity, student_id)
		self._progress.ensure_available(activity, self._clock())
		questions = await self._progress.ordered_questions(activity, student_id)
		policy.ensure_position(position, len(questions))
		return await self.submit_answer(activity_id, student_id, questions[position - 1].id, value)

	# Teachers

	async def get_results_matrix(self, activity_id: int, caller_id: int) -> schemas.ResultsResponse:
		activity = await self._require_activity(activity_id)
		matrix = await self._results.matrix(activity, self._clock())
		logger.info("activity_results_read", extra={"activity_id": activity.id, "caller_id": caller_id})
		return schemas.ResultsResponse.from_matrix(matrix)

	# Helpers

	async def _require_activity(self, activity_id: int) -> models.Activity:
		activity = await self._repo.get_activity(activity_id)
		if activity is None:
			raise NotFound("activity_not_found", message="Activity not found")
		return activity

	async def _require_member(self, activity: models.Activity, student_id: int) -> None:
		roster = policy.ensure_roster(await self._rosters.roster(activity.roster_id))
		policy.ensure_roster_member(roster, student_id)

	def _summary(self, activity: models.Activity, now: datetime) -> schemas.ActivitySummary:
		return schemas.ActivitySummary.from_activity(
			activity,
			status=self._state.status(activity, now),
			remaining_seconds=state.remaining_seconds(activity, now),
		)

	def _present_options(
		self,
		activity: models.Activity,
		student_id: int,
		question: models.Question,
	) -> tuple[Dict[str, Any], Optional[List[int]]]:
		options = dict(question.options or {})
		propositions = options.get("propositions")
		if not activity.shuffle_propositions or not isinstance(propositions, list):
			return options, None
		order = proposition_order(
			len(propositions),
			seed=activity.seed,
			student_id=student_id,
			question_id=question.id,
		)
		options["propositions"] = [propositions[index] for index in order]
		return options, order

	async def _notify(
		self,
		event_type: str,
		activity_id: int,
		snapshot: Optional[Dict[str, Any]],
		*,
		roster_id: Optional[int],
	) -> None:
		try:
			await asyncio.wait_for(
				self._sink.publish(event_type, activity_id, snapshot, roster_id=roster_id),
				timeout=settings.notify_timeout_seconds,
			)
		except Exception:
			obs_metrics.inc_notify_failure(type(self._sink).__name__)
			logger.exception("activity_notify_failed", extra={"activity_id": activity_id, "event": event_type})
