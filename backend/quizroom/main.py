"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizroom.api import activities, ops
from quizroom.api.errors import install_error_handlers
from quizroom.domain.activities.sockets import ActivitiesNamespace, set_namespace as set_activities_namespace
from quizroom.infra import postgres
from quizroom.obs import init as obs_init
from quizroom.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if pool is None:
		logger.warning("postgres_not_configured", extra={"store": "memory"})
	try:
		yield
	finally:
		await postgres.close_pool()


app = FastAPI(title="Quizroom Activities", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
activities_namespace = ActivitiesNamespace()
sio.register_namespace(activities_namespace)
set_activities_namespace(activities_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.include_router(activities.router, tags=["activities"])
app.include_router(activities.rosters_router, tags=["activities"])
app.include_router(ops.router, tags=["ops"])
