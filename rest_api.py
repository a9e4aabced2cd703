import datetime
import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Body, APIRouter, Request
from fastapi.responses import JSONResponse

from db import (
    WorkoutRepository,
    FoodRepository,
    NutritionGoalRepository,
    NutritionLogRepository,
    WaterLogRepository,
    SavedMealRepository,
)
from errors import NotFound, StorageIOError, WriteConflict
from gamification_service import GamificationService
from models import SavedMealItem, Workout
from nutrition_service import NutritionService
from config import APP_VERSION

logger = logging.getLogger(__name__)


def _parse_date(value: str) -> str:
    return datetime.date.fromisoformat(value).isoformat()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    return datetime.datetime.fromisoformat(value)


class TrackerAPI:
    """Provides REST endpoints for workout and nutrition logging."""

    def __init__(
        self,
        db_path: str = "fitnessrpg.db",
        *,
        recent_foods_limit: int = 10,
        seed_catalog: bool = True,
    ) -> None:
        self.db_path = db_path
        self.recent_foods_limit = recent_foods_limit
        self.workouts = WorkoutRepository(db_path)
        self.foods = FoodRepository(db_path, seed_catalog=seed_catalog)
        self.goals = NutritionGoalRepository(db_path, seed_catalog=False)
        self.water = WaterLogRepository(db_path, seed_catalog=False)
        self.nutrition_logs = NutritionLogRepository(db_path, self.goals, self.water)
        self.saved_meals = SavedMealRepository(db_path, seed_catalog=False)
        self.gamification = GamificationService(self.workouts)
        self.nutrition = NutritionService(
            self.nutrition_logs, self.foods, self.saved_meals
        )
        self.app = FastAPI(
            title="FitnessRPG API",
            version=APP_VERSION,
            description="REST API for workout logging, nutrition tracking and progression",
        )
        self._setup_error_handlers()
        self._setup_routes()

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(NotFound)
        async def not_found(request: Request, exc: NotFound):
            return JSONResponse(status_code=404, content={"detail": str(exc)})

        @self.app.exception_handler(WriteConflict)
        async def conflict(request: Request, exc: WriteConflict):
            return JSONResponse(status_code=409, content={"detail": str(exc)})

        @self.app.exception_handler(StorageIOError)
        async def storage_failure(request: Request, exc: StorageIOError):
            logger.error(f"Storage failure on {request.url.path}: {exc}")
            return JSONResponse(status_code=503, content={"detail": str(exc)})

        @self.app.exception_handler(ValueError)
        async def bad_request(request: Request, exc: ValueError):
            return JSONResponse(status_code=400, content={"detail": str(exc)})

    def _setup_routes(self) -> None:
        workouts_router = APIRouter(tags=["Workouts"])
        foods_router = APIRouter(prefix="/foods", tags=["Foods"])
        nutrition_router = APIRouter(tags=["Nutrition"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.workouts.get_workout_count("")
                return {"status": "ok"}
            except StorageIOError as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @workouts_router.post("/workouts")
        def complete_workout(workout: Workout):
            stored, level_up = self.gamification.complete_workout(workout)
            return {"workout": stored, "level_up": level_up}

        @workouts_router.get("/users/{user_id}/workouts")
        def list_workouts(user_id: str):
            return self.workouts.get_workouts(user_id)

        @workouts_router.get("/users/{user_id}/workouts/count")
        def workout_count(user_id: str):
            return {
                "total": self.workouts.get_workout_count(user_id),
                "weekly": self.workouts.get_weekly_workout_count(user_id),
            }

        @workouts_router.get("/users/{user_id}/progression")
        def progression(user_id: str):
            return self.gamification.status(user_id)

        @workouts_router.get("/workouts/{workout_id}")
        def get_workout(workout_id: str):
            return self.workouts.get_workout(workout_id)

        @workouts_router.delete("/workouts/{workout_id}")
        def delete_workout(workout_id: str):
            self.workouts.delete_workout(workout_id)
            return {"status": "deleted"}

        @foods_router.get("/search")
        def search_foods(query: str, limit: int = FoodRepository.SEARCH_LIMIT):
            return self.foods.search(query, limit)

        @foods_router.post("")
        def add_custom_food(
            name: str,
            calories: float,
            protein: float,
            carbs: float,
            fats: float,
            serving_size: float = 100.0,
            serving_unit: str = "g",
        ):
            return self.foods.add_custom(
                name, calories, protein, carbs, fats, serving_size, serving_unit
            )

        @foods_router.get("/{food_id}")
        def get_food(food_id: str):
            return self.foods.fetch_detail(food_id)

        @foods_router.delete("/{food_id}")
        def delete_food(food_id: str):
            self.foods.remove_custom(food_id)
            return {"status": "deleted"}

        @nutrition_router.get("/users/{user_id}/foods/recent")
        def recent_foods(user_id: str, limit: Optional[int] = None):
            return self.nutrition_logs.get_recent_foods(
                user_id, limit or self.recent_foods_limit
            )

        @nutrition_router.post("/users/{user_id}/nutrition/logs")
        def log_food(
            user_id: str,
            food_id: str,
            meal_type: str,
            servings: float = 1.0,
            logged_at: Optional[str] = None,
        ):
            return self.nutrition.log_food(
                user_id, food_id, meal_type, servings, _parse_timestamp(logged_at)
            )

        @nutrition_router.delete("/nutrition/logs/{log_id}")
        def delete_food_log(log_id: str):
            self.nutrition_logs.delete_food_log(log_id)
            return {"status": "deleted"}

        @nutrition_router.get("/users/{user_id}/nutrition/{date}")
        def nutrition_for_date(user_id: str, date: str):
            return self.nutrition.nutrition_for_date(user_id, _parse_date(date))

        @nutrition_router.get("/users/{user_id}/nutrition/{date}/summary")
        def daily_summary(user_id: str, date: str):
            return self.nutrition.daily_summary(user_id, _parse_date(date))

        @nutrition_router.get("/users/{user_id}/nutrition/{date}/meals")
        def meal_logs(user_id: str, date: str):
            return self.nutrition.meal_logs(user_id, _parse_date(date))

        @nutrition_router.post("/users/{user_id}/water")
        def log_water(user_id: str, amount: float, logged_at: Optional[str] = None):
            return self.nutrition.log_water(user_id, amount, _parse_timestamp(logged_at))

        @nutrition_router.get("/users/{user_id}/goals")
        def get_goals(user_id: str):
            return self.goals.fetch(user_id)

        @nutrition_router.put("/users/{user_id}/goals")
        def update_goals(
            user_id: str,
            daily_calories: Optional[float] = None,
            protein_goal: Optional[float] = None,
            carbs_goal: Optional[float] = None,
            fats_goal: Optional[float] = None,
            water_goal: Optional[float] = None,
        ):
            current = self.goals.fetch(user_id)
            changes = {
                "daily_calories": daily_calories,
                "protein_goal": protein_goal,
                "carbs_goal": carbs_goal,
                "fats_goal": fats_goal,
                "water_goal": water_goal,
            }
            goals = current.model_copy(
                update={k: v for k, v in changes.items() if v is not None}
            )
            self.goals.set(goals)
            return goals

        @nutrition_router.post("/users/{user_id}/saved_meals")
        def create_saved_meal(
            user_id: str, name: str, items: List[SavedMealItem] = Body(...)
        ):
            return self.nutrition.create_saved_meal(user_id, name, items)

        @nutrition_router.get("/users/{user_id}/saved_meals")
        def list_saved_meals(user_id: str):
            return self.saved_meals.fetch_all_meals(user_id)

        @nutrition_router.post("/saved_meals/{meal_id}/log")
        def log_saved_meal(
            meal_id: str, user_id: str, meal_type: str, logged_at: Optional[str] = None
        ):
            return self.nutrition.log_saved_meal(
                user_id, meal_id, meal_type, _parse_timestamp(logged_at)
            )

        @nutrition_router.delete("/saved_meals/{meal_id}")
        def delete_saved_meal(meal_id: str):
            self.saved_meals.delete(meal_id)
            return {"status": "deleted"}

        self.app.include_router(workouts_router)
        self.app.include_router(foods_router)
        self.app.include_router(nutrition_router)


if __name__ == "__main__":
    import uvicorn

    from config import load_settings

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    api = TrackerAPI(
        settings.db_path,
        recent_foods_limit=settings.recent_foods_limit,
        seed_catalog=settings.seed_catalog,
    )
    uvicorn.run(api.app)
