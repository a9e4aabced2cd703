import os
import sys
import unittest

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from client import TrackerClient
from rest_api import TrackerAPI


class ClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_client.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.api = TrackerAPI(db_path=self.db_path)
        # TestClient exposes the requests-style session interface without a network
        self.client = TrackerClient(
            base_url="http://testserver", session=TestClient(self.api.app)
        )

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_workout_round_trip(self) -> None:
        self.assertEqual(self.client.health()["status"], "ok")
        result = self.client.complete_workout(
            {
                "user_id": "u1",
                "start_time": "2024-01-08T10:00:00+00:00",
                "exercises": [{"name": "Squat", "sets": [{"reps": 5, "completed": True}]}],
            }
        )
        wid = result["workout"]["id"]
        self.assertEqual(self.client.get_workout(wid)["exercises"][0]["name"], "Squat")
        self.assertEqual(self.client.workout_count("u1")["total"], 1)
        self.assertEqual(self.client.progression("u1")["xp"], 50)
        self.client.delete_workout(wid)
        self.assertEqual(self.client.list_workouts("u1"), [])

    def test_nutrition(self) -> None:
        self.assertTrue(self.client.search_foods("salmon"))
        self.client.log_food("u1", "p2", "dinner", 1, "2024-03-03T19:00:00+01:00")
        self.client.log_water("u1", 300)
        self.assertEqual(self.client.daily_summary("u1", "2024-03-03")["total_calories"], 208)
        self.assertEqual(self.client.nutrition("u1", "2024-03-03")["meal_calories"]["dinner"], 208)
        self.assertEqual([f["id"] for f in self.client.recent_foods("u1")], ["p2"])
        self.client.update_goals("u1", water_goal=3000)
        self.assertEqual(self.client.goals("u1")["water_goal"], 3000)


if __name__ == "__main__":
    unittest.main()
