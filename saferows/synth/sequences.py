from __future__ import annotations

import re
from typing import Iterator

from ..errors import SynthesisError
from ..values import Value
from ..db.models import SequenceDef, SequenceType

_SEQ_TOKEN_RE = re.compile(r"\{seq(?::([^}]*))?\}")


class SequenceGenerator:
    """
    Stateful value source for one sequenced column.

    - INCREMENT yields ``start, start + step, start + 2 * step, ...``
    - CUSTOM_VALUES walks ``custom_values`` in order, then wraps to the first
      value when ``cycle`` is set or keeps repeating the last one
    - PATTERN substitutes ``{seq}`` / ``{seq:03d}`` with a counter that starts
      at ``start_value`` and advances by 1 on every call

    One generator serves every group of an insert, so numbering continues
    across group boundaries.
    """

    def __init__(self, definition: SequenceDef) -> None:
        definition.validate()
        self.definition = definition
        self._current = definition.start_value
        self._index = 0

    def __iter__(self) -> Iterator[Value]:
        return self

    def __next__(self) -> Value:
        return self.next_value()

    def next_value(self) -> Value:
        kind = self.definition.type
        if kind is SequenceType.INCREMENT:
            value = self._current
            self._current += self.definition.step
            return value
        if kind is SequenceType.CUSTOM_VALUES:
            values = self.definition.custom_values or []
            value = values[self._index]
            self._index += 1
            if self._index >= len(values):
                self._index = 0 if self.definition.cycle else len(values) - 1
            return value
        if kind is SequenceType.PATTERN:
            value = self._render(self.definition.pattern or "", self._current)
            self._current += 1
            return value
        raise SynthesisError(f"Unsupported sequence type: {kind}")

    @staticmethod
    def _render(pattern: str, counter: int) -> str:
        def substitute(match: re.Match) -> str:
            fmt = match.group(1)
            if not fmt:
                return str(counter)
            try:
                return ("%" + fmt) % counter
            except (TypeError, ValueError) as exc:
                raise SynthesisError(f"Invalid sequence format {{seq:{fmt}}}: {exc}") from None

        return _SEQ_TOKEN_RE.sub(substitute, pattern)
