"""Domain-level exceptions for classroom activities."""

from __future__ import annotations


class ActivityError(RuntimeError):
	"""Base class for activity failures surfaced to callers.

	``code`` is machine readable, ``detail`` is the human message and
	``status_code`` is the HTTP status the boundary maps it to.
	"""

	kind: str = "error"
	default_status: int = 400

	def __init__(self, code: str, *, message: str | None = None, status_code: int | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		self.status_code = status_code or self.default_status
		self.detail = message or code

	def to_payload(self) -> dict[str, str]:
		return {"error": self.kind, "code": self.code, "message": self.detail}


class Unauthorized(ActivityError):
	kind = "unauthorized"
	default_status = 403


class InvalidState(ActivityError):
	kind = "invalid_state"
	default_status = 409


class InvalidInput(ActivityError):
	kind = "invalid_input"
	default_status = 422


class NotFound(ActivityError):
	kind = "not_found"
	default_status = 404


class RateLimited(ActivityError):
	kind = "rate_limited"
	default_status = 429


class StorageFailure(ActivityError):
	kind = "storage_failure"
	default_status = 503


Forbidden = Unauthorized
InvalidTransition = InvalidState
