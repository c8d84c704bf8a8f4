"""Query parameter parsing shared by the fault-injection endpoints."""

import re
from collections.abc import Iterable, Mapping

# Optional sign followed by ASCII digits only; int() alone would also
# accept whitespace, underscores and non-ASCII digits.
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


def _first_values(items: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Collapse repeated query parameters, keeping the first value per name.

    Starlette's ``QueryParams.get`` returns the last value; the service
    honours the first one, so ``?duration=5&duration=abc`` means 5.
    """
    params: dict[str, str] = {}
    for name, value in items:
        params.setdefault(name, value)
    return params


def _parse_non_negative_int(
    params: Mapping[str, str], name: str, default: int
) -> int | None:
    """Parse and validate a non-negative integer query parameter.

    Args:
        params: Query string parameters, one value per name (see
            ``_first_values``).
        name: Parameter name (e.g. "duration").
        default: Value used when the parameter is absent or empty.

    Returns:
        The parsed value, or None if the value is not an integer or is
        negative. Callers answer None with a 400 and perform no work.
    """
    raw = params.get(name, "")
    if raw == "":
        return default
    if not _INTEGER_RE.fullmatch(raw):
        return None
    value = int(raw)
    if value < 0:
        return None
    return value
