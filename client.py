import requests
from typing import List, Optional


class TrackerClient:
    """Simple REST client for the tracker API."""

    def __init__(self, base_url: str = "http://localhost:8000", session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs):
        resp = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        resp.raise_for_status()
        return resp.json()

    def health(self) -> dict:
        return self._request("GET", "/health")

    def complete_workout(self, workout: dict) -> dict:
        """Store a finished workout; returns the stored workout and level change."""
        return self._request("POST", "/workouts", json=workout)

    def list_workouts(self, user_id: str) -> List[dict]:
        return self._request("GET", f"/users/{user_id}/workouts")

    def get_workout(self, workout_id: str) -> dict:
        return self._request("GET", f"/workouts/{workout_id}")

    def delete_workout(self, workout_id: str) -> None:
        self._request("DELETE", f"/workouts/{workout_id}")

    def workout_count(self, user_id: str) -> dict:
        return self._request("GET", f"/users/{user_id}/workouts/count")

    def progression(self, user_id: str) -> dict:
        return self._request("GET", f"/users/{user_id}/progression")

    def search_foods(self, query: str) -> List[dict]:
        return self._request("GET", "/foods/search", params={"query": query})

    def recent_foods(self, user_id: str, limit: Optional[int] = None) -> List[dict]:
        params = {"limit": limit} if limit else None
        return self._request("GET", f"/users/{user_id}/foods/recent", params=params)

    def log_food(
        self,
        user_id: str,
        food_id: str,
        meal_type: str,
        servings: float = 1.0,
        logged_at: Optional[str] = None,
    ) -> dict:
        params = {"food_id": food_id, "meal_type": meal_type, "servings": servings}
        if logged_at:
            params["logged_at"] = logged_at
        return self._request("POST", f"/users/{user_id}/nutrition/logs", params=params)

    def log_water(self, user_id: str, amount: float) -> dict:
        return self._request("POST", f"/users/{user_id}/water", params={"amount": amount})

    def nutrition(self, user_id: str, date: str) -> dict:
        return self._request("GET", f"/users/{user_id}/nutrition/{date}")

    def daily_summary(self, user_id: str, date: str) -> dict:
        return self._request("GET", f"/users/{user_id}/nutrition/{date}/summary")

    def goals(self, user_id: str) -> dict:
        return self._request("GET", f"/users/{user_id}/goals")

    def update_goals(self, user_id: str, **goals: float) -> dict:
        return self._request("PUT", f"/users/{user_id}/goals", params=goals)
