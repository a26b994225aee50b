"""Pydantic models for the persisted per-scope benchmark record.

The on-disk field names are camelCase (``packagePath``, ``nsPerOp``...);
Python attributes are snake_case and populated through aliases.

Decoding is an explicit schema-with-defaults:
- absent known fields take their defaults (``null`` counts as absent)
- unknown fields are ignored and dropped on the next save
- type mismatches are rejected (no str -> float or bool -> int coercion)
"""

import math
from datetime import date, datetime
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)


def _coerce_day(value: Any) -> date:
    """Accept a date or an ISO ``YYYY-MM-DD`` string, nothing else."""
    if isinstance(value, datetime):
        raise ValueError("expected a calendar day, got a timestamp")
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValueError(f"invalid calendar day {value!r}") from None
    raise ValueError(f"expected a calendar day, got {type(value).__name__}")


def _require_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValueError("expected a finite number")
    return float(value)


CalendarDay = Annotated[date, BeforeValidator(_coerce_day)]
Number = Annotated[float, BeforeValidator(_require_number)]
Count = Annotated[StrictInt, Field(ge=0)]


class _Schema(BaseModel):
    """Shared decode rules for persisted models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


# =============================================================================
# Measurements
# =============================================================================

class Measurement(_Schema):
    """One dated sample of a benchmark's metrics."""

    date: CalendarDay
    ns_per_op: Number = Field(alias="nsPerOp", ge=0)
    bytes_per_op: Optional[Count] = Field(default=None, alias="bytesPerOp")
    allocs_per_op: Optional[Count] = Field(default=None, alias="allocsPerOp")

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"date": self.date, "nsPerOp": self.ns_per_op}
        if self.bytes_per_op is not None:
            doc["bytesPerOp"] = self.bytes_per_op
        if self.allocs_per_op is not None:
            doc["allocsPerOp"] = self.allocs_per_op
        return doc


class BenchmarkRecord(_Schema):
    """Full time series of one benchmark.

    ``name`` is the mapping key in the file and is not serialized inside
    the record itself.
    """

    name: StrictStr = Field(default="", exclude=True)
    history: list[Measurement] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_history_order(self) -> "BenchmarkRecord":
        for previous, current in zip(self.history, self.history[1:]):
            if current.date <= previous.date:
                raise ValueError(
                    f"history dates must be strictly ascending and unique "
                    f"({previous.date} then {current.date})"
                )
        return self

    @property
    def latest(self) -> Optional[Measurement]:
        return self.history[-1] if self.history else None


# =============================================================================
# Package record
# =============================================================================

class ManualSections(_Schema):
    """Hand-authored annotations, preserved verbatim by merges."""

    optimization_steps: list[StrictStr] = Field(default_factory=list, alias="optimizationSteps")
    future_improvements: list[StrictStr] = Field(default_factory=list, alias="futureImprovements")
    notes: StrictStr = ""

    def is_empty(self) -> bool:
        return not (self.optimization_steps or self.future_improvements or self.notes)

    def to_document(self) -> dict[str, Any]:
        return {
            "optimizationSteps": list(self.optimization_steps),
            "futureImprovements": list(self.future_improvements),
            "notes": self.notes,
        }


class PackageData(_Schema):
    """Persisted record of one benchmark scope."""

    package_path: StrictStr = Field(default="", alias="packagePath")
    last_updated: Optional[CalendarDay] = Field(default=None, alias="lastUpdated")
    benchmarks: dict[StrictStr, BenchmarkRecord] = Field(default_factory=dict)
    manual_sections: ManualSections = Field(default_factory=ManualSections, alias="manualSections")

    @field_validator("benchmarks", mode="before")
    @classmethod
    def _empty_records(cls, value: Any) -> Any:
        # A record key with no body (`BenchmarkA-8:`) is an empty record
        if isinstance(value, dict):
            return {name: {} if record is None else record for name, record in value.items()}
        return value

    @model_validator(mode="after")
    def _name_records(self) -> "PackageData":
        for name, record in self.benchmarks.items():
            record.name = name
        return self

    @classmethod
    def empty(cls, scope: str) -> "PackageData":
        """New record for a scope with no prior file."""
        return cls(package_path=scope)

    def to_document(self) -> dict[str, Any]:
        """Plain mapping in the persisted field order, benchmarks sorted by name."""
        doc: dict[str, Any] = {"packagePath": self.package_path}
        if self.last_updated is not None:
            doc["lastUpdated"] = self.last_updated
        doc["benchmarks"] = {
            name: {"history": [m.to_document() for m in self.benchmarks[name].history]}
            for name in sorted(self.benchmarks)
        }
        doc["manualSections"] = self.manual_sections.to_document()
        return doc
