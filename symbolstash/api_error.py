"""JSON error responses of the HTTP API."""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass


def _chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


@dataclass
class ApiErrorResponse:
    """An error response: a detail message and optionally its causes."""

    detail: str | None = None
    causes: list[str] | None = None

    @classmethod
    def with_detail(cls, error: object) -> ApiErrorResponse:
        """Create a response whose detail is the text of ``error``."""
        return cls(detail=str(error))

    @classmethod
    def from_exception(cls, error: BaseException) -> ApiErrorResponse:
        """Create a response from an exception and its chain of causes."""
        messages: list[str] = []
        for exc in _chain(error):
            message = str(exc)
            if message not in messages:
                messages.append(message)
        return cls(detail=messages[0], causes=messages[1:] or None)

    def to_json(self) -> str:
        """Serialize to compact JSON; ``causes`` is left out when absent."""
        payload: dict = {"detail": self.detail}
        if self.causes is not None:
            payload["causes"] = list(self.causes)
        return json.dumps(payload, separators=(",", ":"))