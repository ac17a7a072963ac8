"""Wiring of the realtime components around one transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from dmchat.domain.chat.notifications import OfflineNotifier
from dmchat.domain.chat.relay import MessageRelay
from dmchat.domain.chat.service import ChatService
from dmchat.domain.realtime.presence import PresenceBroadcaster
from dmchat.domain.realtime.registry import ConnectionRegistry
from dmchat.domain.realtime.rooms import RoomMembership, Transport
from dmchat.domain.social.relay import FriendEventRelay
from dmchat.domain.social.service import FriendService
from dmchat.infra.store import DocumentStore, get_store


@dataclass(slots=True)
class RealtimeContext:
	registry: ConnectionRegistry
	rooms: RoomMembership
	presence: PresenceBroadcaster
	messages: MessageRelay
	friend_events: FriendEventRelay
	friends: FriendService
	chats: ChatService


def build_context(
	transport: Transport,
	*,
	stores: Callable[[], DocumentStore] = get_store,
	registry: Optional[ConnectionRegistry] = None,
	notifier: Optional[OfflineNotifier] = None,
) -> RealtimeContext:
	if registry is None:
		registry = ConnectionRegistry()
	rooms = RoomMembership(transport, stores)
	friend_events = FriendEventRelay(registry, transport)
	return RealtimeContext(
		registry=registry,
		rooms=rooms,
		presence=PresenceBroadcaster(registry, transport, stores),
		messages=MessageRelay(registry, rooms, transport, stores, notifier),
		friend_events=friend_events,
		friends=FriendService(friend_events, stores),
		chats=ChatService(registry, rooms, stores),
	)


_context: Optional[RealtimeContext] = None


def set_context(context: Optional[RealtimeContext]) -> None:
	global _context
	_context = context


def get_context() -> Optional[RealtimeContext]:
	return _context
