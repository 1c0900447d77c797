"""FastAPI routes for classroom quiz activities."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from quizroom.domain.activities import schemas
from quizroom.domain.activities.exceptions import ActivityError
from quizroom.domain.activities.service import ActivitiesService
from quizroom.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/activities", tags=["activities"])
rosters_router = APIRouter(prefix="/rosters", tags=["activities"])

_service = ActivitiesService()


def get_service() -> ActivitiesService:
	return _service


def _as_http_error(exc: ActivityError) -> HTTPException:
	return HTTPException(status_code=exc.status_code, detail=exc.to_payload())


@router.get("", response_model=schemas.ActivityList)
async def list_activities_endpoint(
	roster_id: Optional[int] = Query(default=None),
	owned: bool = Query(default=False),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivityList:
	try:
		return await service.list_activities(auth_user, roster_id=roster_id, owned=owned)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@router.post("", response_model=schemas.ActivitySummary, status_code=status.HTTP_201_CREATED)
async def create_activity_endpoint(
	payload: schemas.CreateActivityRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	try:
		return await service.create_activity(
			auth_user.id,
			roster_id=payload.roster_id,
			quiz_id=payload.quiz_id,
			duration=payload.duration,
			shuffle_questions=payload.shuffle_questions,
			shuffle_propositions=payload.shuffle_propositions,
			seed=payload.seed,
		)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@router.get("/{activity_id}", response_model=schemas.ActivitySummary)
async def get_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	try:
		return await service.get_activity(activity_id)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@router.get("/{activity_id}/roster", response_model=schemas.RosterSummary)
async def activity_roster_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.RosterSummary:
	try:
		return await service.activity_roster(activity_id)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


async def _run_transition(service: ActivitiesService, name: str, activity_id: int, caller_id: int) -> schemas.ActivitySummary:
	handlers = {
		"open": service.open_activity,
		"close": service.close_activity,
		"start": service.start_activity,
		"finish": service.finish_activity,
		"hide": service.hide_activity,
		"show": service.show_activity,
	}
	try:
		return await handlers[name](activity_id, caller_id)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@router.post("/{activity_id}/open", response_model=schemas.ActivitySummary)
async def open_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	return await _run_transition(service, "open", activity_id, auth_user.id)


@router.post("/{activity_id}/close", response_model=schemas.ActivitySummary)
async def close_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	return await _run_transition(service, "close", activity_id, auth_user.id)


@router.post("/{activity_id}/start", response_model=schemas.ActivitySummary)
async def start_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	return await _run_transition(service, "start", activity_id, auth_user.id)


@router.post("/{activity_id}/finish", response_model=schemas.ActivitySummary)
async def finish_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	return await _run_transition(service, "finish", activity_id, auth_user.id)


@router.post("/{activity_id}/hide", response_model=schemas.ActivitySummary)
async def hide_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	return await _run_transition(service, "hide", activity_id, auth_user.id)


@router.post("/{activity_id}/show", response_model=schemas.ActivitySummary)
async def show_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivitySummary:
	return await _run_transition(service, "show", activity_id, auth_user.id)


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> Response:
	try:
		await service.delete_activity(activity_id, auth_user.id)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{activity_id}/progress", response_model=schemas.ProgressResponse)
async def progress_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ProgressResponse:
	try:
		return await service.get_progress(activity_id, auth_user.id)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@router.get("/{activity_id}/questions/{position}", response_model=schemas.QuestionView)
async def question_endpoint(
	activity_id: int,
	position: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.QuestionView:
	try:
		return await service.get_question(activity_id, auth_user.id, position)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@router.post("/{activity_id}/answers", response_model=schemas.AnswerResult)
async def submit_answer_endpoint(
	activity_id: int,
	payload: schemas.SubmitAnswerRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.AnswerResult:
	if payload.question_id is None and payload.position is None:
		raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="question_id_or_position_required")
	try:
		if payload.question_id is not None:
			return await service.submit_answer(activity_id, auth_user.id, payload.question_id, payload.value)
		return await service.submit_answer_at(activity_id, auth_user.id, payload.position, payload.value)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@router.get("/{activity_id}/results", response_model=schemas.ResultsResponse)
async def results_endpoint(
	activity_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ResultsResponse:
	try:
		return await service.get_results_matrix(activity_id, auth_user.id)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc


@rosters_router.get("/{roster_id}/activities", response_model=schemas.ActivityList)
async def roster_activities_endpoint(
	roster_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ActivitiesService = Depends(get_service),
) -> schemas.ActivityList:
	try:
		return await service.list_roster_activities(auth_user, roster_id)
	except ActivityError as exc:
		raise _as_http_error(exc) from exc
