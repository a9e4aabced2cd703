import logging
import datetime
from typing import Dict, List, Optional

from db import FoodRepository, NutritionLogRepository, SavedMealRepository
from models import (
    DailyNutritionSummary,
    MealType,
    NutritionGoals,
    NutritionLog,
    SavedMeal,
    SavedMealItem,
    WaterLog,
)
from tools import DateTools, MathTools

logger = logging.getLogger(__name__)

_DEFAULTS = NutritionGoals(user_id="")

# metric -> (summary total field, summary goal field, default goal)
_METRICS = {
    "calories": ("total_calories", "goal_calories", _DEFAULTS.daily_calories),
    "protein": ("total_protein", "goal_protein", _DEFAULTS.protein_goal),
    "carbs": ("total_carbs", "goal_carbs", _DEFAULTS.carbs_goal),
    "fats": ("total_fats", "goal_fats", _DEFAULTS.fats_goal),
    "water": ("total_water", "goal_water", _DEFAULTS.water_goal),
}


class NutritionService:
    """Dashboard views recomputed from the stored logs on every call."""

    def __init__(
        self,
        log_repo: NutritionLogRepository,
        food_repo: FoodRepository,
        saved_meal_repo: SavedMealRepository | None = None,
    ) -> None:
        self.logs = log_repo
        self.foods = food_repo
        self.saved_meals = saved_meal_repo

    @staticmethod
    def progress(summary: DailyNutritionSummary) -> Dict[str, dict]:
        """Return total, goal, capped progress and signed remaining per metric."""
        result: Dict[str, dict] = {}
        for metric, (total_field, goal_field, default) in _METRICS.items():
            total = getattr(summary, total_field)
            goal = getattr(summary, goal_field)
            result[metric] = {
                "total": total,
                "goal": goal if goal is not None else default,
                "progress": MathTools.progress_ratio(total, goal, default),
                "remaining": MathTools.remaining(total, goal, default),
            }
        return result

    @staticmethod
    def meal_calories(meals: Dict[str, List[NutritionLog]]) -> Dict[str, int]:
        return {
            meal: MathTools.round_half_up(MathTools.total(l.calories for l in logs))
            for meal, logs in meals.items()
        }

    def daily_summary(self, user_id: str, date: str | None = None) -> DailyNutritionSummary:
        return self.logs.get_daily_nutrition_summary(user_id, date or DateTools.today())

    def meal_logs(self, user_id: str, date: str | None = None) -> Dict[str, List[NutritionLog]]:
        return self.logs.get_meal_logs(user_id, date or DateTools.today())

    def nutrition_for_date(self, user_id: str, date: str | None = None) -> dict:
        date = date or DateTools.today()
        summary = self.logs.get_daily_nutrition_summary(user_id, date)
        meals = self.logs.get_meal_logs(user_id, date)
        return {
            "summary": summary,
            "meals": meals,
            "meal_calories": self.meal_calories(meals),
            "progress": self.progress(summary),
        }

    def log_food(
        self,
        user_id: str,
        food_id: str,
        meal_type: str,
        servings: float,
        logged_at: Optional[datetime.datetime] = None,
    ) -> NutritionLog:
        """Log ``servings`` of a catalog food; ``logged_at`` defaults to now."""
        if servings <= 0:
            raise ValueError("servings must be positive")
        food = self.foods.fetch_detail(food_id)
        return self.logs.add_food_log(
            user_id,
            food.id,
            food.name_en,
            meal_type,
            servings,
            food.calories,
            food.protein,
            food.carbs,
            food.fats,
            logged_at=logged_at or DateTools.local_now(),
        )

    def log_water(
        self, user_id: str, amount: float, logged_at: Optional[datetime.datetime] = None
    ) -> WaterLog:
        if amount <= 0:
            raise ValueError("amount must be positive")
        return self.logs.water.log_water(
            user_id, amount, logged_at=logged_at or DateTools.local_now()
        )

    def create_saved_meal(
        self, user_id: str, name: str, items: List[SavedMealItem]
    ) -> SavedMeal:
        """Store a named meal; totals are computed from the current catalog."""
        if self.saved_meals is None:
            raise ValueError("saved meals are not configured")
        totals = {"calories": 0.0, "protein": 0.0, "carbs": 0.0, "fats": 0.0}
        for item in items:
            food = self.foods.fetch_detail(item.food_id)
            for key in totals:
                totals[key] += MathTools.scaled(getattr(food, key), item.servings)
        meal = SavedMeal(
            user_id=user_id,
            name=name,
            foods=items,
            total_calories=totals["calories"],
            total_protein=totals["protein"],
            total_carbs=totals["carbs"],
            total_fats=totals["fats"],
        )
        return self.saved_meals.save(meal)

    def log_saved_meal(
        self,
        user_id: str,
        meal_id: str,
        meal_type: str,
        logged_at: Optional[datetime.datetime] = None,
    ) -> List[NutritionLog]:
        """Log every item of a saved meal, or nothing if any food is missing."""
        if self.saved_meals is None:
            raise ValueError("saved meals are not configured")
        meal = self.saved_meals.fetch_detail(meal_id)
        when = logged_at or DateTools.local_now()
        meal_type = MealType(meal_type).value
        entries = []
        for item in meal.foods:
            if item.servings <= 0:
                raise ValueError("servings must be positive")
            food = self.foods.fetch_detail(item.food_id)
            entries.append(
                self.logs.build_log(
                    user_id,
                    food.id,
                    food.name_en,
                    meal_type,
                    item.servings,
                    food.calories,
                    food.protein,
                    food.carbs,
                    food.fats,
                    logged_at=when,
                )
            )
        self.logs.add_food_logs(entries)
        logger.info(f"Logged saved meal {meal.name} ({len(entries)} items)")
        return entries
