import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import WorkoutRepository
from gamification_service import (
    GamificationService,
    LEVELS,
    MAX_LEVEL,
    detect_level_up,
    level_for,
    level_name,
    level_progress,
    next_level_threshold,
    session_xp,
    xp_for,
)
from models import Exercise, Workout, WorkoutSet

UTC = datetime.timezone.utc


def _workout(user_id: str = "u1", completed: int = 2, pending: int = 1) -> Workout:
    sets = [WorkoutSet(reps=5, completed=True) for _ in range(completed)]
    sets += [WorkoutSet(reps=5) for _ in range(pending)]
    return Workout(
        user_id=user_id,
        start_time=datetime.datetime.now(UTC),
        exercises=[Exercise(name="Squat", sets=sets)],
    )


class LevelTableTestCase(unittest.TestCase):
    def test_thresholds(self) -> None:
        cases = {0: 0, 4: 0, 5: 1, 14: 1, 15: 2, 29: 2, 30: 3, 49: 3, 50: 4, 74: 4, 75: 5, 500: 5}
        for count, level in cases.items():
            self.assertEqual(level_for(count), level, count)

    def test_monotonic(self) -> None:
        levels = [level_for(n) for n in range(120)]
        self.assertEqual(levels, sorted(levels))
        self.assertEqual(levels[-1], MAX_LEVEL)

    def test_names(self) -> None:
        self.assertEqual(level_name(0), "Rookie")
        self.assertEqual(level_name(MAX_LEVEL), "Master")
        self.assertEqual(level_name(99), "Master")
        self.assertEqual(len(LEVELS), 6)

    def test_xp(self) -> None:
        self.assertEqual(xp_for(0), 0)
        self.assertEqual(xp_for(7), 350)

    def test_detect_level_up(self) -> None:
        result = detect_level_up(4, 5)
        self.assertTrue(result.leveled_up)
        self.assertEqual((result.old_level, result.new_level), (0, 1))
        self.assertFalse(detect_level_up(5, 6).leveled_up)
        self.assertFalse(detect_level_up(80, 81).leveled_up)

    def test_next_level(self) -> None:
        self.assertEqual(next_level_threshold(0), 5)
        self.assertEqual(next_level_threshold(20), 30)
        self.assertIsNone(next_level_threshold(75))
        self.assertAlmostEqual(level_progress(20), 20 / 30)
        self.assertEqual(level_progress(100), 1.0)

    def test_session_xp(self) -> None:
        self.assertEqual(session_xp(_workout(completed=3, pending=2)), 30)
        self.assertEqual(session_xp(_workout(completed=0, pending=0)), 0)


class GamificationServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_gamification.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.service = GamificationService(WorkoutRepository(self.db_path))

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_complete_workout_levels_up_on_fifth(self) -> None:
        for _ in range(4):
            _, result = self.service.complete_workout(_workout())
            self.assertFalse(result.leveled_up)
        stored, result = self.service.complete_workout(_workout())
        self.assertTrue(result.leveled_up)
        self.assertEqual(result.new_level, 1)
        self.assertEqual(stored.xp_earned, 20)
        self.assertEqual(self.service.workouts.get_workout(stored.id).xp_earned, 20)

    def test_status(self) -> None:
        for _ in range(6):
            self.service.complete_workout(_workout())
        status = self.service.status("u1")
        self.assertEqual(status["total_workouts"], 6)
        self.assertEqual(status["weekly_workouts"], 6)
        self.assertEqual(status["level"], 1)
        self.assertEqual(status["level_name"], "Novice")
        self.assertEqual(status["xp"], 300)
        self.assertEqual(status["next_level_workouts"], 15)
        self.assertEqual(status["workouts_to_next_level"], 9)
        self.assertAlmostEqual(status["progress"], 6 / 15)

    def test_status_for_new_user(self) -> None:
        status = self.service.status("nobody")
        self.assertEqual(status["level"], 0)
        self.assertEqual(status["xp"], 0)
        self.assertEqual(status["workouts_to_next_level"], 5)


if __name__ == "__main__":
    unittest.main()
