from __future__ import annotations

_MASK_32 = 0xFFFFFFFF


def worklet_hash(code: str) -> int:
	"""Stable integer fingerprint of a worklet's synthesized source.

	Two djb2-style accumulators (seeded 5381 and 52711) consume the UTF-16 code
	units of `code` from last to first. The result is `hash1 * 4096 + hash2`,
	so identical text always yields the same identity across runs.
	"""
	units = code.encode("utf-16-le")
	hash1 = 5381
	hash2 = 52711
	for i in range(len(units) - 2, -1, -2):
		char = units[i] | (units[i + 1] << 8)
		hash1 = ((hash1 * 33) ^ char) & _MASK_32
		hash2 = ((hash2 * 33) ^ char) & _MASK_32
	return hash1 * 4096 + hash2
