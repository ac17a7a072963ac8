"""Base model for payloads crossing the socket and HTTP boundary.

Field names stay snake_case in Python; on the wire they use the camelCase keys
clients already speak (``chatId``, ``messageType``, ``profilePic``).
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	def to_wire(self) -> Dict[str, Any]:
		return self.model_dump(mode="json", by_alias=True)
