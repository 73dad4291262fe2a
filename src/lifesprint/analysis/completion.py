"""
Completion scoring for sprint days and weekly reflections.

A completion score is a weighted 0-100 measure of how filled-in an entry is.
It drives the progress bars in the client and breaks ties when two copies of
the same day collide during sync (the more complete copy wins).

Day weights:
  gratitude     5 per non-empty entry   (max 3 → 15)
  achievements  5 per non-empty entry   (max 3 → 15)
  goals         5 per goal with text    (max 3 → 15)
               15 per completed goal    (max 3 → 45)
  exercise     10

Reflection weights:
  gratitude     5 per non-empty self/others/world field (max 15)
  achievements  5 each (max 15)
  improvements  5 each (max 15)
  insights      5 each (max 15)
  rules        10 each (max 30)
  exercise     10
"""
from statistics import mean
from typing import Iterable, Optional

from lifesprint.models.progress import (
    DayEntry,
    ProgressRecord,
    WeekReflection,
    days_in_week,
    is_reflection_day,
    week_for_day,
)

MAX_SCORE = 100
MAX_ENTRIES = 3  # entries per category that earn points


def _filled(values: Iterable[str]) -> int:
    return sum(1 for v in values if v and v.strip())


def _capped(count: int) -> int:
    return min(count, MAX_ENTRIES)


def day_completion(day: DayEntry) -> int:
    """Completion score of one sprint day, 0-100."""
    total = 0
    total += 5 * _capped(_filled(day.gratitude))
    total += 5 * _capped(_filled(day.achievements))
    total += 5 * _capped(sum(1 for g in day.goals if g.text.strip()))
    total += 15 * _capped(sum(1 for g in day.goals if g.completed))
    if day.exercise_completed:
        total += 10
    return min(round(total), MAX_SCORE)


def reflection_completion(reflection: WeekReflection) -> int:
    """Completion score of one weekly reflection, 0-100."""
    gratitude = (
        reflection.gratitude_self,
        reflection.gratitude_others,
        reflection.gratitude_world,
    )
    total = 0
    total += 5 * _filled(gratitude)
    total += 5 * _capped(_filled(reflection.achievements))
    total += 5 * _capped(_filled(reflection.improvements))
    total += 5 * _capped(_filled(reflection.insights))
    total += 10 * _capped(_filled(reflection.rules))
    if reflection.exercise_completed:
        total += 10
    return min(round(total), MAX_SCORE)


# ─── Aggregates for the progress bars ──────────────────────────────────────────

def entry_completion(record: ProgressRecord, day_number: int) -> int:
    """Score of a single day slot; a reflection day is scored by its reflection."""
    if is_reflection_day(day_number):
        reflection = record.week_reflections.get(week_for_day(day_number))
        if reflection is not None:
            return reflection_completion(reflection)
    day = record.days.get(day_number)
    return day_completion(day) if day is not None else 0


def week_completion(record: ProgressRecord, week_number: int) -> int:
    """Mean score of the 7 day slots of a week. Missing days count as 0."""
    return round(mean(entry_completion(record, d) for d in days_in_week(week_number)))


def sprint_completion(record: ProgressRecord, weeks: Optional[int] = None) -> int:
    """Mean week score over the first `weeks` weeks (default: up to the current week)."""
    weeks = weeks if weeks is not None else max(record.current_week, 1)
    if weeks <= 0:
        return 0
    return round(mean(week_completion(record, w) for w in range(1, weeks + 1)))


def progress_status_message(score: int) -> str:
    """Short motivational line for a completion score."""
    if score >= 100:
        return "Amazing! You've completed everything!"
    if score >= 75:
        return "Great progress! Keep going!"
    if score >= 50:
        return "You're halfway there!"
    if score >= 25:
        return "Good start! Keep pushing!"
    return "Let's get started!"
