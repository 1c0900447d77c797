"""Policy helpers for classroom activities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from redis.exceptions import RedisError

from quizroom.domain.activities import models
from quizroom.domain.activities.exceptions import InvalidInput, NotFound, RateLimited, StorageFailure, Unauthorized
from quizroom.infra.redis import redis_client
from quizroom.obs import metrics as obs_metrics
from quizroom.settings import settings

SEED_MAX = 4_294_967_295


async def _touch_limit(key: str, ttl_seconds: int) -> int:
	try:
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.incr(key)
			pipe.expire(key, ttl_seconds)
			count, _ = await pipe.execute()
	except RedisError as exc:
		obs_metrics.inc_storage_failure("rate_limit")
		raise StorageFailure("storage_failure:rate_limit", message="Rate limiter is unavailable") from exc
	return int(count)


async def enforce_create_limit(teacher_id: int) -> None:
	bucket = datetime.now(timezone.utc).strftime("%Y%m%d")
	key = f"rl:activity:create:{teacher_id}:{bucket}"
	if await _touch_limit(key, 86_400) > settings.activity_create_limit_per_day:
		raise RateLimited("rate_limited:create", message="Too many activities created today")


async def enforce_submit_limit(student_id: int) -> None:
	bucket = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
	key = f"rl:activity:answer:{student_id}:{bucket}"
	if await _touch_limit(key, 120) > settings.answer_submit_limit_per_minute:
		raise RateLimited("rate_limited:answer", message="Too many answers submitted")


def validate_duration(duration: Optional[int]) -> int:
	if duration is None:
		return settings.activity_default_duration_s
	if duration < settings.activity_min_duration_s:
		raise InvalidInput(
			"duration_too_short",
			message=f"Duration must be at least {settings.activity_min_duration_s} seconds",
		)
	return int(duration)


def validate_seed(seed: Optional[int]) -> Optional[int]:
	if seed is None:
		return None
	if not 0 <= seed <= SEED_MAX:
		raise InvalidInput("invalid_seed", message=f"Seed must be between 0 and {SEED_MAX}")
	return int(seed)


def ensure_roster(roster: models.Roster | None) -> models.Roster:
	if roster is None:
		raise NotFound("roster_not_found", message="Roster not found")
	return roster


def ensure_roster_teacher(roster: models.Roster, teacher_id: int) -> None:
	if roster.teacher_id != teacher_id:
		raise Unauthorized("not_roster_teacher", message="Only the roster's teacher can create activities for it")


def ensure_roster_member(roster: models.Roster, student_id: int) -> None:
	if not roster.includes(student_id):
		raise Unauthorized("not_roster_member", message="Student is not part of this roster")


def ensure_position(position: int, total: int) -> int:
	if position < 1 or position > total:
		raise NotFound("question_not_found", message="No question at this position")
	return position
