"""AsyncPG pool management for the backend."""

from __future__ import annotations

from typing import Optional

import asyncpg

from quizroom.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


def is_configured() -> bool:
	return bool(settings.postgres_url)


async def init_pool() -> Optional[asyncpg.pool.Pool]:
	global _pool
	if _pool is None and is_configured():
		# Force 127.0.0.1 instead of localhost to avoid IPv6 issues on Windows
		dsn = str(settings.postgres_url).replace("localhost", "127.0.0.1")
		_pool = await asyncpg.create_pool(
			dsn=dsn,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			command_timeout=settings.postgres_command_timeout,
		)
	return _pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
