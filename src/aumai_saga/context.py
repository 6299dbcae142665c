"""Context store holding step results keyed by tag."""

from __future__ import annotations

from typing import Any, Mapping

__all__ = ["ContextStore"]


class ContextStore:
    """Accumulates step results, optionally pre-seeded under a reserved prefix.

    The underlying ``dict`` is handed to actions and compensations as-is, so
    callables see every result recorded so far.  Only the executor records
    into it.

    Args:
        reserved_prefix: Prefix applied to seeded keys.  ``None`` disables
            seeding and reserved-key filtering altogether.
    """

    def __init__(self, reserved_prefix: str | None = None) -> None:
        self._prefix = reserved_prefix
        self.data: dict[str, Any] = {}

    def seed(self, initial: Mapping[str, Any]) -> None:
        """Store every entry of *initial* under the reserved prefix.

        Raises:
            ValueError: When the store was created without a reserved prefix.
        """
        if not initial:
            return
        if self._prefix is None:
            raise ValueError(
                "An initial context requires inject_context=True; "
                "without it seeded values would be indistinguishable from step results."
            )
        for key, value in initial.items():
            self.data[f"{self._prefix}{key}"] = value

    def is_reserved(self, key: str) -> bool:
        """Return True if *key* carries the reserved prefix."""
        return self._prefix is not None and key.startswith(self._prefix)

    def record(self, tag: str, value: Any) -> None:
        self.data[tag] = value

    def result_from(self, tag: str) -> Any:
        """Return the result stored under *tag*, or *None*."""
        if self.is_reserved(tag):
            return None
        return self.data.get(tag)

    def results_all(self) -> dict[str, Any]:
        """Return a snapshot of all step results, excluding seeded entries."""
        return {k: v for k, v in self.data.items() if not self.is_reserved(k)}

    def clear(self) -> None:
        self.data.clear()
