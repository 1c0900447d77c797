"""Authentication helpers for FastAPI endpoints.

Bearer HS256 JWTs are verified with settings.secret_key. In development the
X-User-Id / X-User-Roles headers are accepted instead so local tools can act
as any teacher or student.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quizroom.infra import jwt as jwt_helper
from quizroom.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: int
	roles: Tuple[str, ...] = ()
	display_name: Optional[str] = None

	def has_role(self, role: str) -> bool:
		return role in self.roles

	@property
	def is_teacher(self) -> bool:
		return self.has_role("teacher")

	@property
	def is_student(self) -> bool:
		return self.has_role("student")


_bearer_scheme = HTTPBearer(auto_error=False)


def _parse_roles(claim: object) -> Tuple[str, ...]:
	if isinstance(claim, (list, tuple)):
		return tuple(str(r).strip() for r in claim if str(r).strip())
	if isinstance(claim, str):
		return tuple(part.strip() for part in claim.split(",") if part.strip())
	return ()


def _parse_user_id(value: object) -> int:
	try:
		return int(str(value).strip())
	except (TypeError, ValueError):
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	The ``sub`` claim carries the numeric user id; ``roles`` can be a list or
	a comma-separated string.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	user_id = _parse_user_id(payload.get("sub"))
	roles = _parse_roles(payload.get("roles") or payload.get("role"))
	display_name = payload.get("name") or payload.get("display_name")
	return AuthenticatedUser(
		id=user_id,
		roles=roles,
		display_name=str(display_name) if display_name is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=_parse_user_id(x_user_id), roles=_parse_roles(x_user_roles))

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
