"""Socket.IO namespace carrying the chat, typing, presence and friend events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import socketio
from socketio.exceptions import ConnectionRefusedError

from dmchat.domain.chat.exceptions import ChatError
from dmchat.domain.chat.schemas import SendMessageRequest
from dmchat.domain.common.wire import WireModel
from dmchat.domain.realtime.context import RealtimeContext, build_context
from dmchat.domain.realtime.events import InvalidEvent, parse_inbound
from dmchat.domain.realtime.registry import ConnectionHandle
from dmchat.domain.social.exceptions import SocialError
from dmchat.domain.social.schemas import RespondToFriendRequest, SendFriendRequest
from dmchat.infra.auth import AuthenticatedUser, AuthFailure, authenticate_handshake
from dmchat.infra.rate_limit import RateLimitExceeded
from dmchat.infra.rate_limit import allow as rate_allow
from dmchat.infra.store import DocumentStore, StoreError, get_store
from dmchat.obs import logging as obs_logging
from dmchat.obs import metrics as obs_metrics
from dmchat.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Session:
	user: AuthenticatedUser
	handle: ConnectionHandle


Handler = Callable[[str, _Session, WireModel], Awaitable[None]]


class ChatGateway(socketio.AsyncNamespace):
	"""Default namespace for authenticated chat clients.

	Client events are looked up in a handler table and parsed into typed payloads
	before any handler runs. Each event is handled in isolation: domain errors,
	rate limits and store failures are logged and end that event only.
	"""

	def __init__(self, namespace: str = "/", *, stores: Callable[[], DocumentStore] = get_store) -> None:
		super().__init__(namespace)
		self.context: RealtimeContext = build_context(self, stores=stores)
		self._sessions: Dict[str, _Session] = {}
		self._handlers: Dict[str, Handler] = {
			"joinChat": self._join_chat,
			"leaveChat": self._leave_chat,
			"sendMessage": self._send_message,
			"typing": self._typing,
			"stopTyping": self._stop_typing,
			"sendFriendRequest": self._send_friend_request,
			"respondToFriendRequest": self._respond_to_friend_request,
		}

	def user_for(self, sid: str) -> Optional[AuthenticatedUser]:
		session = self._sessions.get(sid)
		return session.user if session else None

	async def trigger_event(self, event: str, *args):
		if event in ("connect", "disconnect"):
			return await super().trigger_event(event, *args)
		sid = args[0]
		data = args[1] if len(args) > 1 else None
		await self._dispatch(event, sid, data)
		return None

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		try:
			user = authenticate_handshake(environ, auth)
		except AuthFailure as exc:
			obs_metrics.socket_auth_failed()
			obs_metrics.socket_disconnected(self.namespace)
			logger.info("socket_auth_failed sid=%s reason=%s", sid, exc.reason)
			raise ConnectionRefusedError("Authentication failed") from None

		ctx = self.context
		handle = ctx.registry.register(user.id, sid)
		self._sessions[sid] = _Session(user=user, handle=handle)
		tokens = obs_logging.bind_context(user_id=user.id, sid=sid)
		try:
			await ctx.rooms.join_personal(sid, user.id)
			chat_ids = await ctx.rooms.join_conversation_rooms(sid, user.id)
			if sid not in self._sessions:
				# disconnected while the chat list was loading
				await ctx.rooms.evict(sid)
				return
			await ctx.presence.announce_online(user.id)
			logger.info("socket_connected sid=%s user_id=%s chats=%d", sid, user.id, len(chat_ids))
		except StoreError:
			logger.exception("connect_setup_failed sid=%s user_id=%s", sid, user.id)
			await self._abandon_connect(sid, user.id, handle)
			raise ConnectionRefusedError("Service unavailable") from None
		finally:
			obs_logging.reset_context(tokens)

	async def _abandon_connect(self, sid: str, user_id: str, handle: ConnectionHandle) -> None:
		"""Undo a half-finished connect so the user is neither registered nor in any room."""
		obs_metrics.socket_disconnected(self.namespace)
		self._sessions.pop(sid, None)
		self.context.registry.remove(user_id, handle)
		await self.context.rooms.evict(sid)

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		session = self._sessions.pop(sid, None)
		if session is None:
			return
		ctx = self.context
		ctx.rooms.leave_all(sid)
		user_id = session.user.id
		if not ctx.registry.remove(user_id, session.handle):
			logger.info("stale_disconnect sid=%s user_id=%s reason=%s", sid, user_id, reason)
			return
		try:
			await ctx.presence.announce_offline(user_id)
		except StoreError:
			logger.exception("disconnect_presence_failed sid=%s user_id=%s", sid, user_id)
		logger.info("socket_disconnected sid=%s user_id=%s reason=%s", sid, user_id, reason)

	async def _dispatch(self, event: str, sid: str, data) -> None:
		obs_metrics.socket_event(self.namespace, event)
		session = self._sessions.get(sid)
		if session is None:
			self._reject(event, sid, "unauthenticated")
			return
		handler = self._handlers.get(event)
		if handler is None:
			self._reject(event, sid, "unknown_event")
			return
		try:
			payload = parse_inbound(event, data)
		except InvalidEvent as exc:
			self._reject(event, sid, exc.reason)
			return

		tokens = obs_logging.bind_context(user_id=session.user.id, sid=sid)
		try:
			await handler(sid, session, payload)
		except RateLimitExceeded:
			obs_metrics.inc_rate_limited(event)
			await self.emit("sys.warn", {"code": "rate_limited", "event": event}, room=sid)
		except ChatError as exc:
			logger.info("message_dropped event=%s sid=%s reason=%s", event, sid, exc.reason)
		except SocialError as exc:
			obs_metrics.socket_event_rejected(event, exc.reason)
			logger.info("friend_event_rejected event=%s sid=%s reason=%s", event, sid, exc.reason)
		except StoreError:
			obs_metrics.socket_event_failed(event)
			logger.exception("event_failed event=%s sid=%s", event, sid)
		finally:
			obs_logging.reset_context(tokens)

	def _reject(self, event: str, sid: str, reason: str) -> None:
		obs_metrics.socket_event_rejected(event, reason)
		logger.info("event_rejected event=%s sid=%s reason=%s", event, sid, reason)

	async def _check_limit(self, kind: str, user_id: str, limit: int) -> None:
		if not await rate_allow(kind, user_id, limit=limit):
			raise RateLimitExceeded(kind)

	async def _join_chat(self, sid: str, session: _Session, payload) -> None:
		await self.context.rooms.join_conversation(sid, session.user.id, payload.chat_id)

	async def _leave_chat(self, sid: str, session: _Session, payload) -> None:
		await self.context.rooms.leave_conversation(sid, payload.chat_id)

	async def _send_message(self, sid: str, session: _Session, payload: SendMessageRequest) -> None:
		await self._check_limit("send_message", session.user.id, settings.rate_limit_messages_per_minute)
		await self.context.messages.send_message(session.user.id, payload)

	async def _typing(self, sid: str, session: _Session, payload) -> None:
		await self._check_limit("typing", session.user.id, settings.rate_limit_typing_per_minute)
		await self.context.messages.typing(sid, session.user.id, payload.chat_id)

	async def _stop_typing(self, sid: str, session: _Session, payload) -> None:
		await self.context.messages.stop_typing(sid, session.user.id, payload.chat_id)

	async def _send_friend_request(self, sid: str, session: _Session, payload: SendFriendRequest) -> None:
		await self.context.friends.send_request(session.user.id, payload.receiver_id)

	async def _respond_to_friend_request(self, sid: str, session: _Session, payload: RespondToFriendRequest) -> None:
		await self.context.friends.respond(session.user.id, payload.request_id, payload.action)
