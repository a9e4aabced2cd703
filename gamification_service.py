import logging
import datetime
from typing import Optional

from db import WorkoutRepository
from models import LevelUp, Workout

logger = logging.getLogger(__name__)

# (workouts needed, name) per level; the last entry is terminal
LEVELS: list[tuple[int, str]] = [
    (0, "Rookie"),
    (5, "Novice"),
    (15, "Intermediate"),
    (30, "Advanced"),
    (50, "Expert"),
    (75, "Master"),
]
MAX_LEVEL = len(LEVELS) - 1
XP_PER_WORKOUT = 50
XP_PER_COMPLETED_SET = 10


def level_for(count: int) -> int:
    """Return the highest level whose threshold is at most ``count``."""
    level = 0
    for index, (threshold, _name) in enumerate(LEVELS):
        if count >= threshold:
            level = index
    return level


def level_name(level: int) -> str:
    level = max(0, min(level, MAX_LEVEL))
    return LEVELS[level][1]


def xp_for(count: int) -> int:
    return max(count, 0) * XP_PER_WORKOUT


def detect_level_up(old_count: int, new_count: int) -> LevelUp:
    old_level = level_for(old_count)
    new_level = level_for(new_count)
    return LevelUp(
        leveled_up=new_level > old_level,
        old_level=old_level,
        new_level=new_level,
    )


def next_level_threshold(count: int) -> Optional[int]:
    """Workouts needed for the next level, or ``None`` once at the top."""
    level = level_for(count)
    if level >= MAX_LEVEL:
        return None
    return LEVELS[level + 1][0]


def level_progress(count: int) -> float:
    """Fraction of the way to the next threshold, counted from zero."""
    target = next_level_threshold(count)
    if target is None:
        return 1.0
    return max(count, 0) / target


def session_xp(workout: Workout) -> int:
    """XP earned inside one session: a fixed amount per completed set.

    This is unrelated to the level XP returned by :func:`xp_for`.
    """
    completed = sum(
        1 for exercise in workout.exercises for item in exercise.sets if item.completed
    )
    return completed * XP_PER_COMPLETED_SET


class GamificationService:
    """Derive level state from the stored workout history."""

    def __init__(self, workout_repo: WorkoutRepository) -> None:
        self.workouts = workout_repo

    def status(self, user_id: str, now: datetime.datetime | None = None) -> dict:
        count = self.workouts.get_workout_count(user_id)
        level = level_for(count)
        target = next_level_threshold(count)
        return {
            "user_id": user_id,
            "total_workouts": count,
            "weekly_workouts": self.workouts.get_weekly_workout_count(user_id, now),
            "level": level,
            "level_name": level_name(level),
            "xp": xp_for(count),
            "next_level_workouts": target,
            "workouts_to_next_level": None if target is None else target - count,
            "progress": level_progress(count),
        }

    def complete_workout(self, workout: Workout) -> tuple[Workout, LevelUp]:
        """Save a finished session and report whether it crossed a threshold.

        The count is read before the save, so the comparison is between the
        level before and the level after this workout.
        """
        before = self.workouts.get_workout_count(workout.user_id)
        stored = workout.model_copy(update={"xp_earned": session_xp(workout)})
        self.workouts.save_workout(stored)
        result = detect_level_up(before, before + 1)
        if result.leveled_up:
            logger.info(
                f"{workout.user_id} reached level {result.new_level} ({level_name(result.new_level)})"
            )
        return stored, result
