"""Result serialization.

Query results are rendered into JSON-ready dicts in one of two formats. The
format is picked once at startup from settings and passed explicitly to
render_result() on every call; a request may override it. No module-level
format state exists.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class OutputFormat(str, Enum):
    """How enriched records are serialized.

    Values:
        JSON: Every field, defaults included.
        COMPACT: Fields still at their default ("" / 0 / [] / None) are
            omitted. Smaller payloads for token-sensitive consumers.
    """

    JSON = "json"
    COMPACT = "compact"

    @classmethod
    def parse(cls, value: str | None) -> "OutputFormat":
        """Parse a setting value, defaulting to JSON for anything unknown."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.JSON


def render_result(result: dict[str, Any], output_format: OutputFormat) -> dict[str, Any]:
    """Serialize the models inside a result dict.

    Args:
        result: Top-level result, e.g. {"incidents": [...], "total": 2}.
            Values may be models, lists of models, or plain JSON values.
        output_format: Format for this call.

    Returns:
        A new dict containing only JSON-compatible values.
    """
    exclude_defaults = output_format is OutputFormat.COMPACT
    return {key: _dump(value, exclude_defaults) for key, value in result.items()}


def _dump(value: Any, exclude_defaults: bool) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=False, exclude_defaults=exclude_defaults)
    if isinstance(value, list):
        return [_dump(item, exclude_defaults) for item in value]
    return value
