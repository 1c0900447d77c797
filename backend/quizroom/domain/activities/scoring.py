"""Scoring policies for submitted answers."""

from __future__ import annotations

import json
import re
import unicodedata
from typing import Any, Dict, Protocol

from quizroom.domain.activities import models


class ScoringPolicy(Protocol):
	def score(self, question: models.Question, value: Any) -> bool:
		...


class AlwaysCorrectPolicy:
	"""Every submission counts as correct. This is the default grading rule."""

	def score(self, question: models.Question, value: Any) -> bool:
		return True


def _strip_accents(text: str) -> str:
	return "".join(
		ch for ch in unicodedata.normalize("NFKD", text)
		if not unicodedata.combining(ch)
	)


def _normalize_text(value: Any) -> str:
	if value is None:
		return ""
	text = _strip_accents(str(value)).lower().strip()
	return " ".join(text.split())


def _decode(value: Any) -> Any:
	if isinstance(value, str):
		try:
			return json.loads(value)
		except ValueError:
			return value
	return value


def _as_index_set(value: Any) -> set[int] | None:
	value = _decode(value)
	if isinstance(value, bool):
		return None
	if isinstance(value, int):
		return {value}
	if isinstance(value, str) and value.strip().lstrip("-").isdigit():
		return {int(value)}
	if isinstance(value, (list, tuple, set)):
		result: set[int] = set()
		for item in value:
			try:
				result.add(int(item))
			except (TypeError, ValueError):
				return None
		return result
	return None


def _gap_values(value: Any) -> Dict[str, str] | list[str] | None:
	value = _decode(value)
	if isinstance(value, dict):
		return {str(k): _normalize_text(v) for k, v in value.items()}
	if isinstance(value, (list, tuple)):
		return [_normalize_text(v) for v in value]
	return None


def _compile_pattern(pattern: str) -> re.Pattern[str]:
	# Authoring tools store some patterns with a leading/trailing '/' delimiter.
	text = pattern.strip()
	if len(text) > 1 and text.startswith("/"):
		text = text[1:]
		if text.endswith("/"):
			text = text[:-1]
	return re.compile(text, re.IGNORECASE)


class CanonicalMatchPolicy:
	"""Compare a submission with the question's canonical answer.

	- free-form: canonical ``{"pattern": regex}`` searched in the text, or a
	  plain string compared after normalisation
	- multiple-choice: canonical list of indices, equal as sets
	- fill-in-the-gaps: canonical list (positional) or mapping (by gap name),
	  every gap must match after normalisation
	"""

	def score(self, question: models.Question, value: Any) -> bool:
		canonical = _decode(question.answer)
		if canonical is None:
			return False
		if question.type == "multiple-choice":
			return self._score_choices(canonical, value)
		if question.type == "fill-in-the-gaps":
			return self._score_gaps(canonical, value)
		return self._score_free_form(canonical, value)

	def _score_free_form(self, canonical: Any, value: Any) -> bool:
		if isinstance(canonical, dict) and canonical.get("pattern"):
			try:
				regex = _compile_pattern(str(canonical["pattern"]))
			except re.error:
				return False
			return regex.search(str(_decode(value))) is not None
		return _normalize_text(canonical) == _normalize_text(_decode(value))

	def _score_choices(self, canonical: Any, value: Any) -> bool:
		expected = _as_index_set(canonical)
		given = _as_index_set(value)
		return expected is not None and given is not None and expected == given

	def _score_gaps(self, canonical: Any, value: Any) -> bool:
		expected = _gap_values(canonical)
		given = _gap_values(value)
		if expected is None or given is None:
			return False
		if isinstance(expected, dict):
			if not isinstance(given, dict):
				return False
			return all(given.get(name) == text for name, text in expected.items())
		if isinstance(given, dict):
			given = list(given.values())
		return list(given) == list(expected)


POLICIES: Dict[str, type] = {
	"always_correct": AlwaysCorrectPolicy,
	"canonical": CanonicalMatchPolicy,
}


def build_policy(name: str) -> ScoringPolicy:
	try:
		return POLICIES[name]()
	except KeyError as exc:
		raise ValueError(f"unknown scoring policy: {name}") from exc
