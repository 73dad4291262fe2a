"""
Progress domain models: daily entries, weekly reflections, the sprint record.

These are exchanged with the remote store as JSON documents using the
camelCase keys the web client writes (startDate, weekReflections,
exerciseCompleted, ...). Python code uses the snake_case attribute names.
Keys this module does not know about are kept in model_extra and written
back unchanged.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

DAYS_IN_WEEK = 7


def is_reflection_day(day_number: int) -> bool:
    """Every 7th day of the sprint is a weekly reflection day."""
    return day_number > 0 and day_number % DAYS_IN_WEEK == 0


def week_for_day(day_number: int) -> int:
    """Week number (1-based) a sprint day belongs to."""
    return (day_number - 1) // DAYS_IN_WEEK + 1


def days_in_week(week_number: int) -> List[int]:
    """Day numbers of a week, e.g. week 2 → [8, ..., 14]."""
    first = (week_number - 1) * DAYS_IN_WEEK + 1
    return list(range(first, first + DAYS_IN_WEEK))


class _WireModel(BaseModel):
    # Keys written by other clients are kept and written back untouched
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


def _blank_nulls(value: Any) -> Any:
    # The web client occasionally stores null instead of ""
    if value is None:
        return ""
    if isinstance(value, list):
        return ["" if item is None else item for item in value]
    return value


Text = Annotated[str, BeforeValidator(_blank_nulls)]
TextList = Annotated[List[str], BeforeValidator(_blank_nulls)]


class Goal(_WireModel):
    text: Text = ""
    completed: bool = False


class DayEntry(_WireModel):
    """One sprint day as filled in by the user."""

    day_number: Optional[int] = None
    date: str = ""
    completed: bool = False

    gratitude: TextList = []
    achievements: TextList = []
    goals: List[Goal] = []
    additional_gratitude: TextList = []
    additional_achievements: TextList = []

    exercise_completed: bool = False
    thoughts_completed: bool = False
    audio_completed: bool = False
    reflection_completed: bool = False


class WeekReflection(_WireModel):
    """Answers to the end-of-week reflection (written on day 7, 14, ...)."""

    week_number: Optional[int] = None

    gratitude_self: Text = ""
    gratitude_others: Text = ""
    gratitude_world: Text = ""

    achievements: TextList = []
    improvements: TextList = []
    insights: TextList = []
    rules: TextList = []

    exercise_completed: bool = False
    reflection_completed: bool = False


class ProgressRecord(_WireModel):
    """A user's whole sprint: per-day entries plus weekly reflections."""

    start_date: Optional[datetime] = None
    current_day: int = 1
    current_week: int = 1
    days: Dict[int, DayEntry] = {}
    week_reflections: Dict[int, WeekReflection] = {}

    @field_validator("start_date")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("days", "week_reflections")
    @classmethod
    def _positive_keys(cls, value: Dict[int, Any]) -> Dict[int, Any]:
        bad = [k for k in value if k <= 0]
        if bad:
            raise ValueError(f"day/week numbers must be positive, got {bad}")
        return value

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProgressRecord":
        """Parse a wire document. Raises pydantic.ValidationError if malformed."""
        return cls.model_validate(payload)

    def to_payload(self) -> Dict[str, Any]:
        """Serialise to a JSON-compatible wire document."""
        return self.model_dump(mode="json", by_alias=True)
