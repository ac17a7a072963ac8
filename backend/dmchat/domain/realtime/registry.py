"""Process-local map from user id to the connection currently serving them.

One entry per user: a second connection for the same user replaces the first
(last registration wins). The replaced connection stays open and keeps its room
memberships; it just stops being the target of user-directed events.

Every registration carries a generation number so teardown of a superseded
connection cannot remove the newer entry (see ``remove``).
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from dmchat.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ConnectionHandle:
	user_id: str
	sid: str
	generation: int


class ConnectionRegistry:
	def __init__(self) -> None:
		self._entries: Dict[str, ConnectionHandle] = {}
		self._generations = itertools.count(1)

	def register(self, user_id: str, sid: str) -> ConnectionHandle:
		handle = ConnectionHandle(user_id=str(user_id), sid=sid, generation=next(self._generations))
		previous = self._entries.get(handle.user_id)
		self._entries[handle.user_id] = handle
		if previous is not None and previous.sid != sid:
			logger.info("registry_superseded user_id=%s old_sid=%s new_sid=%s", handle.user_id, previous.sid, sid)
		obs_metrics.registry_online(len(self._entries))
		return handle

	def lookup(self, user_id: str) -> Optional[ConnectionHandle]:
		return self._entries.get(str(user_id))

	def remove(self, user_id: str, handle: Optional[ConnectionHandle] = None) -> bool:
		"""Delete the entry for ``user_id`` if it still belongs to ``handle``.

		Returns False (and leaves the entry alone) when a newer registration has
		taken over. Passing no handle removes unconditionally.
		"""
		user_id = str(user_id)
		current = self._entries.get(user_id)
		if current is None:
			return False
		if handle is not None and current.generation != handle.generation:
			return False
		del self._entries[user_id]
		obs_metrics.registry_online(len(self._entries))
		return True

	def all_online(self) -> FrozenSet[str]:
		return frozenset(self._entries)

	def __len__(self) -> int:
		return len(self._entries)

	def __contains__(self, user_id: object) -> bool:
		return str(user_id) in self._entries
