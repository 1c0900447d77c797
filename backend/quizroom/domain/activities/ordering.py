"""Per-student question ordering.

When shuffling is enabled the order is a Fisher–Yates permutation driven by
SHA-256: for ``i`` from ``n - 1`` down to ``1`` the swap index is
``int(sha256(f"{key}:{i}")[:8], big-endian) % (i + 1)`` where
``key = seed + student_id + quiz_id``. The same inputs give the same order on
every interpreter, so a student resuming a session sees a stable sequence and
orders never need to be persisted.
"""

from __future__ import annotations

import hashlib
from typing import Iterable, List, Sequence, TypeVar

T = TypeVar("T")


def shuffle_key(seed: int, student_id: int, quiz_id: int) -> int:
	return int(seed) + int(student_id) + int(quiz_id)


def _swap_index(key: int, i: int) -> int:
	digest = hashlib.sha256(f"{key}:{i}".encode()).digest()
	return int.from_bytes(digest[:8], "big") % (i + 1)


def seeded_permutation(items: Sequence[T], key: int) -> List[T]:
	"""Return a deterministic permutation of ``items`` for ``key``."""
	result = list(items)
	for i in range(len(result) - 1, 0, -1):
		j = _swap_index(key, i)
		result[i], result[j] = result[j], result[i]
	return result


class QuestionOrderer:
	"""Orders a quiz's question ids for one student."""

	def order(
		self,
		question_ids: Iterable[int],
		*,
		shuffle: bool,
		seed: int,
		student_id: int,
		quiz_id: int,
	) -> List[int]:
		canonical = sorted(question_ids)
		if not shuffle:
			return canonical
		return seeded_permutation(canonical, shuffle_key(seed, student_id, quiz_id))


def proposition_order(count: int, *, seed: int, student_id: int, question_id: int) -> List[int]:
	"""Display index -> canonical index for multiple-choice propositions."""
	return seeded_permutation(list(range(count)), shuffle_key(seed, student_id, question_id))
