import pytest

from quizroom.domain.activities.outbox import ACTIVITY_EVENT_STREAM


def _headers(user_id: int, roles: str) -> dict[str, str]:
	return {"X-User-Id": str(user_id), "X-User-Roles": roles}


@pytest.mark.asyncio
async def test_full_activity_flow(api_client, fake_redis, classroom):
	teacher = _headers(classroom.teacher_id, "teacher")
	student_id = classroom.student_ids[0]
	student = _headers(student_id, "student")

	resp = await api_client.post(
		"/activities",
		json={"roster_id": classroom.roster_id, "quiz_id": classroom.quiz_id, "duration": 120},
		headers=teacher,
	)
	assert resp.status_code == 201
	activity = resp.json()
	assert activity["status"] == "idle"
	activity_id = activity["id"]

	resp = await api_client.post(f"/activities/{activity_id}/answers", json={"question_id": 7, "value": "42"}, headers=student)
	assert resp.status_code == 403
	assert resp.json()["detail"]["error"] == "unauthorized"

	resp = await api_client.post(f"/activities/{activity_id}/open", headers=teacher)
	assert resp.json()["status"] == "opened"
	resp = await api_client.post(f"/activities/{activity_id}/start", headers=teacher)
	assert resp.status_code == 200
	assert resp.json()["status"] == "started"

	resp = await api_client.post(f"/activities/{activity_id}/answers", json={"question_id": 7, "value": "42"}, headers=student)
	assert resp.status_code == 200
	assert resp.json()["is_correct"] is True

	resp = await api_client.post(f"/activities/{activity_id}/answers", json={"position": 1, "value": [2]}, headers=student)
	assert resp.status_code == 200
	assert resp.json()["question_id"] == 1

	resp = await api_client.get(f"/activities/{activity_id}/progress", headers=student)
	body = resp.json()
	assert body["answered_count"] == 2
	assert body["percent"] == 50
	assert body["current_question_id"] == 3

	resp = await api_client.get(f"/activities/{activity_id}/questions/2", headers=student)
	assert resp.status_code == 200
	assert resp.json()["question_id"] == 3

	resp = await api_client.get(f"/activities/{activity_id}/results", headers=teacher)
	assert resp.status_code == 409

	resp = await api_client.post(f"/activities/{activity_id}/finish", headers=teacher)
	assert resp.json()["status"] == "finished"

	resp = await api_client.get(f"/activities/{activity_id}/results", headers=teacher)
	assert resp.status_code == 200
	results = resp.json()
	assert results["students"] == classroom.student_ids
	assert results["questions"] == [1, 3, 5, 7]

	events = await fake_redis.xrange(ACTIVITY_EVENT_STREAM)
	kinds = [fields["event"] for _, fields in events]
	assert kinds[0] == "activity:created"
	assert kinds.count("activity:updated") == 3


@pytest.mark.asyncio
async def test_error_mapping(api_client, classroom):
	teacher = _headers(classroom.teacher_id, "teacher")
	other = _headers(classroom.other_teacher_id, "teacher")

	resp = await api_client.post(
		"/activities",
		json={"roster_id": classroom.roster_id, "quiz_id": classroom.quiz_id, "duration": 5},
		headers=teacher,
	)
	assert resp.status_code == 422

	resp = await api_client.post(
		"/activities",
		json={"roster_id": classroom.roster_id, "quiz_id": classroom.quiz_id},
		headers=other,
	)
	assert resp.status_code == 403
	assert resp.json()["detail"]["code"] == "not_roster_teacher"

	resp = await api_client.get("/activities/999", headers=teacher)
	assert resp.status_code == 404
	assert resp.json()["detail"]["error"] == "not_found"

	resp = await api_client.get("/activities/1")
	assert resp.status_code == 401


@pytest.mark.asyncio
async def test_delete_and_listing(api_client, classroom):
	teacher = _headers(classroom.teacher_id, "teacher")
	student = _headers(classroom.student_ids[0], "student")

	resp = await api_client.post(
		"/activities",
		json={"roster_id": classroom.roster_id, "quiz_id": classroom.quiz_id},
		headers=teacher,
	)
	activity_id = resp.json()["id"]

	resp = await api_client.get(f"/rosters/{classroom.roster_id}/activities", headers=student)
	assert resp.json()["count"] == 1

	resp = await api_client.get("/activities", params={"owned": True}, headers=teacher)
	assert [item["id"] for item in resp.json()["activities"]] == [activity_id]

	resp = await api_client.delete(f"/activities/{activity_id}", headers=student)
	assert resp.status_code == 403

	resp = await api_client.delete(f"/activities/{activity_id}", headers=teacher)
	assert resp.status_code == 204

	resp = await api_client.get("/activities", headers=teacher)
	assert resp.json()["count"] == 0


@pytest.mark.asyncio
async def test_metrics_endpoint(api_client):
	resp = await api_client.get("/metrics")
	assert resp.status_code == 200
	assert "quizroom_activity_transitions_total" in resp.text
