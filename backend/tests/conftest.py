import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from quizroom.domain.activities import models
from quizroom.domain.activities.catalog import seed_quiz, seed_roster
from quizroom.domain.activities.repository import reset_memory_state
from quizroom.infra import postgres
from quizroom.main import app
from quizroom.settings import settings

TEACHER_ID = 100
OTHER_TEACHER_ID = 101
STUDENT_IDS = [203, 201, 202]
OUTSIDER_ID = 299
ROSTER_ID = 1
QUIZ_ID = 10
EMPTY_QUIZ_ID = 11


class FakeClock:
	def __init__(self, start: datetime | None = None) -> None:
		self.now = start or datetime(2024, 9, 2, 8, 0, tzinfo=timezone.utc)

	def __call__(self) -> datetime:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now = self.now + timedelta(seconds=seconds)


class RecordingSink:
	def __init__(self) -> None:
		self.events: list[tuple[str, int, dict | None]] = []

	async def publish(self, event_type, activity_id, snapshot, *, roster_id=None):
		self.events.append((event_type, activity_id, snapshot))

	def types(self) -> list[str]:
		return [event[0] for event in self.events]


def quiz_questions() -> list[models.Question]:
	return [
		models.Question(
			id=3,
			quiz_id=QUIZ_ID,
			name="Capital",
			content="What is the capital of France?",
			type="free-form",
			answer={"pattern": "/paris"},
		),
		models.Question(
			id=1,
			quiz_id=QUIZ_ID,
			name="Primes",
			content="Pick the prime number",
			type="multiple-choice",
			answer=[2],
			options={"propositions": ["4", "6", "7", "9"]},
		),
		models.Question(
			id=7,
			quiz_id=QUIZ_ID,
			name="Answer",
			content="Six times seven is ___",
			type="fill-in-the-gaps",
			answer=["42"],
			options={"gaps": 1},
		),
		models.Question(
			id=5,
			quiz_id=QUIZ_ID,
			name="Colours",
			content="The sky is ___ and grass is ___",
			type="fill-in-the-gaps",
			answer={"sky": "blue", "grass": "green"},
		),
	]


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from quizroom.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await client.flushall()
		set_redis_client(original)


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Memory store and dev header authentication for every test."""
	original_env = settings.environment
	original_url = settings.postgres_url
	settings.environment = "dev"
	settings.postgres_url = None
	try:
		yield
	finally:
		settings.environment = original_env
		settings.postgres_url = original_url


@pytest_asyncio.fixture(autouse=True)
async def classroom():
	await reset_memory_state()
	seed_roster(models.Roster(id=ROSTER_ID, teacher_id=TEACHER_ID, name="5B", student_ids=list(STUDENT_IDS)))
	seed_roster(models.Roster(id=2, teacher_id=OTHER_TEACHER_ID, name="6A", student_ids=[OUTSIDER_ID]))
	seed_quiz(QUIZ_ID, quiz_questions())
	seed_quiz(EMPTY_QUIZ_ID, [])
	yield SimpleNamespace(
		teacher_id=TEACHER_ID,
		other_teacher_id=OTHER_TEACHER_ID,
		student_ids=list(STUDENT_IDS),
		outsider_id=OUTSIDER_ID,
		roster_id=ROSTER_ID,
		quiz_id=QUIZ_ID,
		empty_quiz_id=EMPTY_QUIZ_ID,
	)
	await reset_memory_state()


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def sink():
	return RecordingSink()


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
