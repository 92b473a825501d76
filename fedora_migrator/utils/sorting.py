from __future__ import annotations

import re
from typing import Iterable, List, Tuple, Union

_DIGITS = re.compile(r"(\d+)")


def natural_key(value: str) -> Tuple[Union[int, str], ...]:
    """Sort key comparing runs of digits numerically.

    ``"ns:2"`` sorts before ``"ns:10"``; text runs compare as plain strings.
    Every key starts with a text run, so keys of any two strings compare
    without mixing ``int`` and ``str`` at the same position.
    """
    parts = _DIGITS.split(value)
    return tuple(int(part) if index % 2 else part for index, part in enumerate(parts))


def natural_sorted(values: Iterable[str]) -> List[str]:
    return sorted(values, key=lambda v: (natural_key(v), v))
