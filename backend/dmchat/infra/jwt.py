"""Centralised JWT helpers for access tokens.

Uses HS256 with the application's shared secret. Validates standard claims
and expected issuer/audience values.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError

from dmchat.settings import settings


ISSUER = "dmchat-api"
AUDIENCE = "dmchat-client"


def encode_access(user_id: str, *, ttl_seconds: Optional[int] = None, **claims: Any) -> str:
	"""Encode an access token for ``user_id`` with issuer/audience defaults."""
	now = int(time.time())
	ttl = ttl_seconds if ttl_seconds is not None else settings.access_ttl_minutes * 60
	body: Dict[str, Any] = {
		"iss": ISSUER,
		"aud": AUDIENCE,
		"iat": now,
		"exp": now + int(ttl),
		"sub": str(user_id),
	}
	body.update(claims)
	return jwt.encode(body, settings.jwt_secret, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
	"""Decode and validate an access token.

	Raises jwt.InvalidTokenError subclasses on failure.
	"""
	options = {"require": ["exp", "iat"]}
	payload = jwt.decode(
		token,
		settings.jwt_secret,
		algorithms=["HS256"],
		audience=AUDIENCE,
		issuer=ISSUER,
		leeway=5,
		options=options,
	)
	# Tokens minted here before sub was adopted carry the id as userId.
	# They still need this issuer and audience; third-party userId tokens fail above.
	subject = payload.get("sub") or payload.get("userId")
	if not subject or not str(subject).strip():
		raise InvalidTokenError("missing_claim:sub")
	payload["sub"] = str(subject).strip()
	return payload  # type: ignore[return-value]
