"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dmchat.api import chat, friends, ops, presence
from dmchat.api.errors import install_error_handlers
from dmchat.domain.realtime.context import set_context
from dmchat.domain.realtime.sockets import ChatGateway
from dmchat.infra import store as store_module
from dmchat.obs import init as obs_init
from dmchat.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	store = await store_module.init_store()
	logger.info("store_ready backend=%s", type(store).__name__)
	try:
		yield
	finally:
		await store_module.close_store()


app = FastAPI(title="dmchat", lifespan=lifespan)
install_error_handlers(app)

allow_origins = settings.allowed_origins()

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

sio = socketio.AsyncServer(
	async_mode="asgi",
	cors_allowed_origins=allow_origins,
	ping_interval=settings.socket_ping_interval,
	ping_timeout=settings.socket_ping_timeout,
)
gateway = ChatGateway()
sio.register_namespace(gateway)
set_context(gateway.context)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.include_router(ops.router)
app.include_router(chat.router)
app.include_router(friends.router)
app.include_router(presence.router)
