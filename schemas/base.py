"""Shared base for models parsed from Flashduty API payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class WireModel(BaseModel):
    """Frozen model that treats explicit JSON nulls as absent.

    The Flashduty API sends null for unset ids, lists and maps. Dropping
    those keys before validation lets the field defaults (0, "", []) apply,
    so downstream code never has to distinguish null from unset.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data
