"""
Conflict resolution for divergent copies of a user's progress.

Pure and deterministic: the same inputs always give the same merged record,
nothing is read or written. The sync engine calls merge_progress(remote,
local) when replaying queued progress operations.

Policy:
  1. start_date:  the earlier date wins (a sprint never starts later)
  2. current_day: the larger value wins (progress never regresses)
  3. days / week reflections present on one side only are copied as-is
  4. days / week reflections present on both sides:
       - the side with the higher completion score wins wholesale, so two
         half-typed versions of the same free text are never interleaved
       - equal scores are merged field by field: flags are OR-ed, text lists
         are merged position by position preferring the non-empty value,
         and the first argument wins when both are non-empty

When both sides hold different non-empty text at the same position the
second argument's text is discarded. Pass a list as `dropped` to collect
those discards (the engine logs them); the merge result never depends on it.

Keys written by other clients (model_extra) are carried from both sides,
the first argument's value winning on a clash. Results are fresh copies:
mutating a merged record never touches either input.
"""
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from lifesprint.analysis.completion import day_completion, reflection_completion
from lifesprint.models.progress import DayEntry, Goal, ProgressRecord, WeekReflection


@dataclass(frozen=True)
class DroppedValue:
    """A non-empty value lost in a field-wise merge."""
    path: str       # e.g. "days.5.gratitude[1]"
    kept: str
    discarded: str


def _is_blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def _prefer(
    first: str,
    second: str,
    dropped: Optional[List[DroppedValue]],
    path: str,
) -> str:
    """The non-empty value, `first` on ties."""
    if _is_blank(first):
        return second
    if dropped is not None and not _is_blank(second) and second != first:
        dropped.append(DroppedValue(path=path, kept=first, discarded=second))
    return first


def _extras(a: BaseModel, b: BaseModel) -> Dict[str, Any]:
    return deepcopy({**(b.model_extra or {}), **(a.model_extra or {})})


def merge_lists(
    a: List[str],
    b: List[str],
    dropped: Optional[List[DroppedValue]] = None,
    path: str = "",
) -> List[str]:
    """Merge two text lists position by position.

    The result is as long as the longer input. At each index the
    non-empty-after-trim value is taken, preferring `a` when both are
    non-empty or both are empty.
    """
    length = max(len(a), len(b))
    result = []
    for i in range(length):
        first = a[i] if i < len(a) else ""
        second = b[i] if i < len(b) else ""
        result.append(_prefer(first, second, dropped, f"{path}[{i}]"))
    return result


def merge_goals(
    a: List[Goal],
    b: List[Goal],
    dropped: Optional[List[DroppedValue]] = None,
    path: str = "goals",
) -> List[Goal]:
    """Merge goal lists: text prefers non-empty (from `a` on ties), completed is OR-ed."""
    length = max(len(a), len(b))
    result = []
    for i in range(length):
        first = a[i] if i < len(a) else Goal()
        second = b[i] if i < len(b) else Goal()
        result.append(Goal(
            text=_prefer(first.text, second.text, dropped, f"{path}[{i}].text"),
            completed=first.completed or second.completed,
            **_extras(first, second),
        ))
    return result


def merge_day(
    a: DayEntry,
    b: DayEntry,
    dropped: Optional[List[DroppedValue]] = None,
    path: str = "day",
) -> DayEntry:
    """Merge two copies of the same sprint day."""
    score_a = day_completion(a)
    score_b = day_completion(b)
    if score_a > score_b:
        return a.model_copy(deep=True)
    if score_b > score_a:
        return b.model_copy(deep=True)

    return DayEntry(
        day_number=a.day_number if a.day_number is not None else b.day_number,
        date=a.date or b.date,
        completed=a.completed or b.completed,
        gratitude=merge_lists(a.gratitude, b.gratitude, dropped, f"{path}.gratitude"),
        achievements=merge_lists(a.achievements, b.achievements, dropped, f"{path}.achievements"),
        goals=merge_goals(a.goals, b.goals, dropped, f"{path}.goals"),
        additional_gratitude=merge_lists(
            a.additional_gratitude, b.additional_gratitude, dropped, f"{path}.additionalGratitude"
        ),
        additional_achievements=merge_lists(
            a.additional_achievements, b.additional_achievements, dropped, f"{path}.additionalAchievements"
        ),
        exercise_completed=a.exercise_completed or b.exercise_completed,
        thoughts_completed=a.thoughts_completed or b.thoughts_completed,
        audio_completed=a.audio_completed or b.audio_completed,
        reflection_completed=a.reflection_completed or b.reflection_completed,
        **_extras(a, b),
    )


def merge_reflection(
    a: WeekReflection,
    b: WeekReflection,
    dropped: Optional[List[DroppedValue]] = None,
    path: str = "reflection",
) -> WeekReflection:
    """Merge two copies of the same weekly reflection."""
    score_a = reflection_completion(a)
    score_b = reflection_completion(b)
    if score_a > score_b:
        return a.model_copy(deep=True)
    if score_b > score_a:
        return b.model_copy(deep=True)

    return WeekReflection(
        week_number=a.week_number if a.week_number is not None else b.week_number,
        gratitude_self=_prefer(a.gratitude_self, b.gratitude_self, dropped, f"{path}.gratitudeSelf"),
        gratitude_others=_prefer(a.gratitude_others, b.gratitude_others, dropped, f"{path}.gratitudeOthers"),
        gratitude_world=_prefer(a.gratitude_world, b.gratitude_world, dropped, f"{path}.gratitudeWorld"),
        achievements=merge_lists(a.achievements, b.achievements, dropped, f"{path}.achievements"),
        improvements=merge_lists(a.improvements, b.improvements, dropped, f"{path}.improvements"),
        insights=merge_lists(a.insights, b.insights, dropped, f"{path}.insights"),
        rules=merge_lists(a.rules, b.rules, dropped, f"{path}.rules"),
        exercise_completed=a.exercise_completed or b.exercise_completed,
        reflection_completed=a.reflection_completed or b.reflection_completed,
        **_extras(a, b),
    )


def merge_progress(
    a: ProgressRecord,
    b: ProgressRecord,
    dropped: Optional[List[DroppedValue]] = None,
) -> ProgressRecord:
    """Merge two copies of a user's sprint progress (remote first, local second)."""
    if a.start_date is None or b.start_date is None:
        start_date = a.start_date or b.start_date
    else:
        start_date = min(a.start_date, b.start_date)

    days: Dict[int, DayEntry] = {}
    for day in sorted(set(a.days) | set(b.days)):
        if day in a.days and day in b.days:
            days[day] = merge_day(a.days[day], b.days[day], dropped, f"days.{day}")
        else:
            days[day] = (a.days[day] if day in a.days else b.days[day]).model_copy(deep=True)

    reflections: Dict[int, WeekReflection] = {}
    for week in sorted(set(a.week_reflections) | set(b.week_reflections)):
        if week in a.week_reflections and week in b.week_reflections:
            reflections[week] = merge_reflection(
                a.week_reflections[week],
                b.week_reflections[week],
                dropped,
                f"weekReflections.{week}",
            )
        else:
            reflections[week] = (
                a.week_reflections[week] if week in a.week_reflections else b.week_reflections[week]
            ).model_copy(deep=True)

    return ProgressRecord(
        start_date=start_date,
        current_day=max(a.current_day, b.current_day),
        current_week=max(a.current_week, b.current_week),
        days=days,
        week_reflections=reflections,
        **_extras(a, b),
    )


def merge_fields(remote: Dict[str, Any], local: Dict[str, Any]) -> Dict[str, Any]:
    """Merge opaque profile/settings documents: local keys override remote ones."""
    return {**remote, **local}
