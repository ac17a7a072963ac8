"""Authentication helpers shared by the HTTP layer and the socket handshake.

Every failure (missing token, bad signature, expiry, missing subject) collapses
into a single ``AuthFailure`` so callers never leak which check tripped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dmchat.infra import jwt as jwt_helper
from dmchat.settings import settings


class AuthFailure(Exception):
	"""Raised when a credential cannot be verified."""

	def __init__(self, reason: str = "invalid_token") -> None:
		super().__init__(reason)
		self.reason = reason


@dataclass(slots=True, frozen=True)
class AuthenticatedUser:
	id: str
	session_id: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: Optional[str]) -> AuthenticatedUser:
	"""Decode an access JWT and return the identity it carries."""
	token = (token or "").strip()
	if not token:
		raise AuthFailure("missing_token")
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to a single outcome
		raise AuthFailure("invalid_token") from None
	session_id = payload.get("sid")
	return AuthenticatedUser(
		id=str(payload["sub"]),
		session_id=str(session_id) if session_id is not None else None,
	)


def _header(scope: Mapping, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _bearer_from_scope(scope: Mapping) -> Optional[str]:
	raw = _header(scope, "authorization")
	if not raw:
		return None
	scheme, _, credentials = raw.partition(" ")
	if scheme.lower() != "bearer":
		return None
	return credentials.strip() or None


def authenticate_handshake(environ: Mapping, auth: Optional[Mapping] = None) -> AuthenticatedUser:
	"""Verify the credential presented when a socket connects.

	The token is read from the client auth payload (``{"token": ...}``) and falls
	back to an ``Authorization: Bearer`` header on the ASGI scope.
	"""
	scope = environ.get("asgi.scope", environ)
	auth_payload = auth if isinstance(auth, Mapping) else {}
	token = auth_payload.get("token") or _bearer_from_scope(scope)
	return verify_access_jwt(token if isinstance(token, str) else None)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user for an HTTP request.

	In development a bare X-User-Id header is accepted for local tools. In all
	other environments a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		try:
			return verify_access_jwt(credentials.credentials)
		except AuthFailure:
			raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
