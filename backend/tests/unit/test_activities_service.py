import asyncio

import pytest

from quizroom.domain.activities import notifications
from quizroom.domain.activities.exceptions import (
	InvalidInput,
	InvalidState,
	NotFound,
	RateLimited,
	Unauthorized,
)
from quizroom.domain.activities.service import ActivitiesService
from quizroom.domain.activities.scoring import CanonicalMatchPolicy
from quizroom.infra.auth import AuthenticatedUser
from quizroom.settings import settings


def make_service(clock, sink, **kwargs) -> ActivitiesService:
	return ActivitiesService(clock=clock, sink=sink, **kwargs)


async def create(service, classroom, **kwargs):
	params = dict(roster_id=classroom.roster_id, quiz_id=classroom.quiz_id, duration=600)
	params.update(kwargs)
	return await service.create_activity(classroom.teacher_id, **params)


@pytest.mark.asyncio
async def test_lifecycle_scenario(clock, sink, classroom):
	service = make_service(clock, sink)
	teacher = classroom.teacher_id

	summary = await create(service, classroom)
	assert summary.status == "idle"
	assert 0 <= summary.seed <= 4_294_967_295

	opened = await service.open_activity(summary.id, teacher)
	assert opened.status == "opened"

	started = await service.start_activity(summary.id, teacher)
	assert started.status == "started"
	assert started.remaining_seconds == 600

	clock.advance(601)
	current = await service.get_activity(summary.id)
	assert current.status == "finished"
	assert current.remaining_seconds == 0

	hidden = await service.hide_activity(summary.id, teacher)
	assert hidden.hidden is True

	with pytest.raises(InvalidState):
		await service.delete_activity(summary.id, teacher)

	assert sink.types() == [
		notifications.ACTIVITY_CREATED,
		notifications.ACTIVITY_UPDATED,
		notifications.ACTIVITY_UPDATED,
		notifications.ACTIVITY_UPDATED,
	]
	assert [event[2]["transition"] for event in sink.events[1:]] == ["open", "start", "hide"]


@pytest.mark.asyncio
async def test_hide_rejected_while_running(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom)
	await service.start_activity(summary.id, classroom.teacher_id)
	with pytest.raises(InvalidState):
		await service.hide_activity(summary.id, classroom.teacher_id)


@pytest.mark.asyncio
async def test_submit_before_and_after_start(clock, sink, classroom):
	service = make_service(clock, sink)
	student = classroom.student_ids[0]
	summary = await create(service, classroom)

	with pytest.raises(Unauthorized):
		await service.submit_answer(summary.id, student, 7, "42")

	await service.start_activity(summary.id, classroom.teacher_id)
	result = await service.submit_answer(summary.id, student, 7, "42")
	assert result.is_correct is True
	assert result.answer == "42"


@pytest.mark.asyncio
async def test_non_owner_is_unauthorized_before_state_check(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom)
	await service.start_activity(summary.id, classroom.teacher_id)

	with pytest.raises(Unauthorized):
		await service.start_activity(summary.id, classroom.other_teacher_id)
	with pytest.raises(InvalidState):
		await service.start_activity(summary.id, classroom.teacher_id)


@pytest.mark.asyncio
async def test_concurrent_start_only_one_succeeds(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom)

	results = await asyncio.gather(
		service.start_activity(summary.id, classroom.teacher_id),
		service.start_activity(summary.id, classroom.teacher_id),
		return_exceptions=True,
	)
	successes = [r for r in results if not isinstance(r, Exception)]
	failures = [r for r in results if isinstance(r, Exception)]
	assert len(successes) == 1
	assert len(failures) == 1
	assert isinstance(failures[0], InvalidState)


@pytest.mark.asyncio
async def test_create_validation(clock, sink, classroom):
	service = make_service(clock, sink)
	with pytest.raises(InvalidInput):
		await create(service, classroom, duration=5)
	with pytest.raises(InvalidInput):
		await create(service, classroom, seed=2**32)
	with pytest.raises(Unauthorized):
		await service.create_activity(classroom.other_teacher_id, roster_id=classroom.roster_id, quiz_id=classroom.quiz_id)
	with pytest.raises(NotFound):
		await create(service, classroom, roster_id=404)
	with pytest.raises(NotFound):
		await create(service, classroom, quiz_id=404)
	assert sink.events == []


@pytest.mark.asyncio
async def test_create_defaults(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await service.create_activity(classroom.teacher_id, roster_id=classroom.roster_id, quiz_id=classroom.quiz_id, seed=0)
	assert summary.duration == settings.activity_default_duration_s
	assert summary.seed == 0
	assert summary.shuffle_questions is False


@pytest.mark.asyncio
async def test_create_rate_limited(clock, sink, classroom, monkeypatch):
	monkeypatch.setattr(settings, "activity_create_limit_per_day", 2)
	service = make_service(clock, sink)
	await create(service, classroom)
	await create(service, classroom)
	with pytest.raises(RateLimited):
		await create(service, classroom)


@pytest.mark.asyncio
async def test_delete_idle_notifies_tombstone(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom)

	with pytest.raises(Unauthorized):
		await service.delete_activity(summary.id, classroom.other_teacher_id)
	await service.delete_activity(summary.id, classroom.teacher_id)

	assert sink.events[-1] == (notifications.ACTIVITY_DELETED, summary.id, None)
	with pytest.raises(NotFound):
		await service.get_activity(summary.id)


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_transition(clock, classroom):
	class BrokenSink:
		async def publish(self, *args, **kwargs):
			raise ConnectionError("socket server down")

	service = make_service(clock, BrokenSink())
	summary = await create(service, classroom)
	started = await service.start_activity(summary.id, classroom.teacher_id)
	assert started.status == "started"


@pytest.mark.asyncio
async def test_slow_notification_is_bounded(clock, classroom, monkeypatch):
	monkeypatch.setattr(settings, "notify_timeout_seconds", 0.01)

	class SlowSink:
		async def publish(self, *args, **kwargs):
			await asyncio.sleep(5)

	service = make_service(clock, SlowSink())
	summary = await create(service, classroom)
	opened = await service.open_activity(summary.id, classroom.teacher_id)
	assert opened.status == "opened"


@pytest.mark.asyncio
async def test_explicit_finish(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom)
	with pytest.raises(InvalidState):
		await service.finish_activity(summary.id, classroom.teacher_id)
	await service.start_activity(summary.id, classroom.teacher_id)
	clock.advance(30)
	finished = await service.finish_activity(summary.id, classroom.teacher_id)
	assert finished.status == "finished"
	assert finished.remaining_seconds == 0


@pytest.mark.asyncio
async def test_show_after_hide(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom, duration=10)
	await service.start_activity(summary.id, classroom.teacher_id)
	clock.advance(10)
	await service.hide_activity(summary.id, classroom.teacher_id)
	shown = await service.show_activity(summary.id, classroom.teacher_id)
	assert shown.hidden is False
	with pytest.raises(InvalidState):
		await service.show_activity(summary.id, classroom.teacher_id)


@pytest.mark.asyncio
async def test_progress_tracks_current_question(clock, sink, classroom):
	service = make_service(clock, sink)
	student = classroom.student_ids[0]
	summary = await create(service, classroom)

	with pytest.raises(Unauthorized):
		await service.get_progress(summary.id, student)

	await service.start_activity(summary.id, classroom.teacher_id)
	clock.advance(100)
	progress = await service.get_progress(summary.id, student)
	assert [item.question_id for item in progress.questions] == [1, 3, 5, 7]
	assert progress.current_question_id == 1
	assert progress.current_position == 1
	assert progress.total_count == 4
	assert progress.percent == 0
	assert progress.remaining_seconds == 500

	await service.submit_answer(summary.id, student, 1, [2])
	await service.submit_answer(summary.id, student, 5, {"sky": "blue", "grass": "green"})
	progress = await service.get_progress(summary.id, student)
	assert progress.current_question_id == 3
	assert progress.answered_count == 2
	assert progress.percent == 50

	await service.submit_answer(summary.id, student, 3, "Paris")
	await service.submit_answer(summary.id, student, 7, ["42"])
	progress = await service.get_progress(summary.id, student)
	assert progress.current_question_id is None
	assert progress.current_position is None
	assert progress.percent == 100


@pytest.mark.asyncio
async def test_progress_with_empty_quiz(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom, quiz_id=classroom.empty_quiz_id)
	await service.start_activity(summary.id, classroom.teacher_id)
	progress = await service.get_progress(summary.id, classroom.student_ids[0])
	assert progress.total_count == 0
	assert progress.percent == 0
	assert progress.current_question_id is None


@pytest.mark.asyncio
async def test_shuffled_progress_is_stable_per_student(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom, shuffle_questions=True, seed=12345)
	await service.start_activity(summary.id, classroom.teacher_id)

	a, b = classroom.student_ids[0], classroom.student_ids[1]
	first = [item.question_id for item in (await service.get_progress(summary.id, a)).questions]
	again = [item.question_id for item in (await service.get_progress(summary.id, a)).questions]
	other = [item.question_id for item in (await service.get_progress(summary.id, b)).questions]
	assert first == again
	assert sorted(first) == sorted(other) == [1, 3, 5, 7]


@pytest.mark.asyncio
async def test_outsider_cannot_read_or_answer(clock, sink, classroom):
	service = make_service(clock, sink)
	summary = await create(service, classroom)
	await service.start_activity(summary.id, classroom.teacher_id)
	with pytest.raises(Unauthorized):
		await service.get_progress(summary.id, classroom.outsider_id)
	with pytest.raises(Unauthorized):
		await service.submit_answer(summary.id, classroom.outsider_id, 7, "42")


@pytest.mark.asyncio
async def test_question_by_position_and_submit_at(clock, sink, classroom):
	service = make_service(clock, sink)
	student = classroom.student_ids[1]
	summary = await create(service, classroom)
	await service.start_activity(summary.id, classroom.teacher_id)

	view = await service.get_question(summary.id, student, 2)
	assert view.question_id == 3
	assert view.total == 4
	assert view.answer is None
	assert view.proposition_order is None

	result = await service.submit_answer_at(summary.id, student, 2, "Paris")
	assert result.question_id == 3
	view = await service.get_question(summary.id, student, 2)
	assert view.answer == "Paris"

	with pytest.raises(NotFound):
		await service.get_question(summary.id, student, 5)
	with pytest.raises(NotFound):
		await service.submit_answer_at(summary.id, student, 0, "x")


@pytest.mark.asyncio
async def test_shuffled_propositions(clock, sink, classroom):
	service = make_service(clock, sink)
	student = classroom.student_ids[0]
	summary = await create(service, classroom, shuffle_propositions=True, seed=99)
	await service.start_activity(summary.id, classroom.teacher_id)

	view = await service.get_question(summary.id, student, 1)
	canonical = ["4", "6", "7", "9"]
	assert sorted(view.proposition_order) == [0, 1, 2, 3]
	assert view.options["propositions"] == [canonical[i] for i in view.proposition_order]


@pytest.mark.asyncio
async def test_results_matrix(clock, sink, classroom):
	service = make_service(clock, sink, scoring=CanonicalMatchPolicy())
	summary = await create(service, classroom, shuffle_questions=True, seed=3)
	await service.start_activity(summary.id, classroom.teacher_id)

	first, second, _ = classroom.student_ids
	await service.submit_answer(summary.id, first, 3, "paris")
	await service.submit_answer(summary.id, second, 1, [0])

	with pytest.raises(InvalidState):
		await service.get_results_matrix(summary.id, classroom.teacher_id)

	clock.advance(600)
	results = await service.get_results_matrix(summary.id, classroom.teacher_id)
	assert results.students == classroom.student_ids
	assert results.questions == [1, 3, 5, 7]

	rows = {row.student_id: row for row in results.matrix}
	first_cells = {cell.question_id: cell for cell in rows[first].answers}
	assert first_cells[3].answer == "paris"
	assert first_cells[3].is_correct is True
	assert first_cells[1].answer is None
	assert first_cells[1].is_correct is False
	second_cells = {cell.question_id: cell for cell in rows[second].answers}
	assert second_cells[1].is_correct is False

	await service.hide_activity(summary.id, classroom.teacher_id)
	with pytest.raises(InvalidState):
		await service.get_results_matrix(summary.id, classroom.teacher_id)


@pytest.mark.asyncio
async def test_list_activities_for_students_and_teachers(clock, sink, classroom):
	service = make_service(clock, sink)
	visible = await create(service, classroom)
	clock.advance(1)
	hidden = await create(service, classroom, duration=10)
	await service.start_activity(hidden.id, classroom.teacher_id)
	clock.advance(11)
	await service.hide_activity(hidden.id, classroom.teacher_id)

	student = AuthenticatedUser(id=classroom.student_ids[0], roles=("student",))
	listing = await service.list_activities(student)
	assert [item.id for item in listing.activities] == [visible.id]

	teacher = AuthenticatedUser(id=classroom.teacher_id, roles=("teacher",))
	listing = await service.list_activities(teacher, owned=True)
	assert [item.id for item in listing.activities] == [hidden.id, visible.id]
	assert listing.count == 2

	other = AuthenticatedUser(id=classroom.other_teacher_id, roles=("teacher",))
	assert (await service.list_activities(other, owned=True)).count == 0

	outsider = AuthenticatedUser(id=classroom.outsider_id, roles=("student",))
	assert (await service.list_roster_activities(outsider, classroom.roster_id)).count == 0
	with pytest.raises(NotFound):
		await service.list_roster_activities(teacher, 404)

	roster = await service.activity_roster(visible.id)
	assert roster.student_ids == classroom.student_ids


@pytest.mark.asyncio
async def test_rejected_answers_do_not_use_submit_budget(clock, sink, classroom, monkeypatch):
	monkeypatch.setattr(settings, "answer_submit_limit_per_minute", 1)
	service = make_service(clock, sink)
	activity = await create(service, classroom)
	student_id = classroom.student_ids[0]

	with pytest.raises(Unauthorized):
		await service.submit_answer(activity.id, student_id, 7, "42")
	await service.start_activity(activity.id, classroom.teacher_id)
	with pytest.raises(InvalidInput):
		await service.submit_answer(activity.id, student_id, 7, "  ")
	with pytest.raises(NotFound):
		await service.submit_answer(activity.id, student_id, 999, "42")

	await service.submit_answer(activity.id, student_id, 7, "42")
	with pytest.raises(RateLimited):
		await service.submit_answer(activity.id, student_id, 7, "43")
