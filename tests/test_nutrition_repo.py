import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    FoodRepository,
    NutritionGoalRepository,
    NutritionLogRepository,
    SavedMealRepository,
    WaterLogRepository,
)
from errors import NotFound, WriteConflict
from models import MealType, NutritionGoals, SavedMeal, SavedMealItem

TZ = datetime.timezone(datetime.timedelta(hours=3))


def at(hour: int, minute: int = 0, day: int = 1) -> datetime.datetime:
    return datetime.datetime(2024, 5, day, hour, minute, tzinfo=TZ)


class FoodRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_foods.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.foods = FoodRepository(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_catalog_is_seeded_once(self) -> None:
        self.assertEqual(self.foods.count(), 25)
        FoodRepository(self.db_path)
        self.assertEqual(self.foods.count(), 25)

    def test_search_is_case_insensitive(self) -> None:
        names = [f.name_en for f in self.foods.search("chick")]
        self.assertIn("Chicken Breast", names)
        self.assertEqual(
            [f.id for f in self.foods.search("CHICK")],
            [f.id for f in self.foods.search("chick")],
        )
        self.assertEqual(self.foods.search("zz"), [])

    def test_search_orders_by_name(self) -> None:
        names = [f.name_en for f in self.foods.search("rice")]
        self.assertEqual(names, ["Brown Rice", "White Rice"])

    def test_search_is_capped(self) -> None:
        for i in range(60):
            self.foods.add_custom(f"Protein Bar {i:02d}", 200, 20, 20, 8)
        results = self.foods.search("protein bar")
        self.assertEqual(len(results), FoodRepository.SEARCH_LIMIT)
        self.assertEqual(results[0].name_en, "Protein Bar 00")

    def test_search_limit_cannot_exceed_cap(self) -> None:
        for i in range(60):
            self.foods.add_custom(f"Chicken {i:02d}", 165, 31, 0, 3.6)
        self.assertEqual(len(self.foods.search("chick", -1)), FoodRepository.SEARCH_LIMIT)
        self.assertEqual(len(self.foods.search("chick", 500)), FoodRepository.SEARCH_LIMIT)
        self.assertEqual(len(self.foods.search("chick", 3)), 3)
        self.assertEqual(self.foods.search("chick", 0), [])

    def test_search_folds_unicode_case(self) -> None:
        self.foods.add_custom("Émincé de Veau", 180, 22, 2, 9)
        self.foods.add_custom("Борщ", 60, 2, 8, 2)
        self.assertEqual([f.name_en for f in self.foods.search("émincé")], ["Émincé de Veau"])
        self.assertEqual([f.name_en for f in self.foods.search("ÉMINCÉ")], ["Émincé de Veau"])
        self.assertEqual([f.name_en for f in self.foods.search("борщ")], ["Борщ"])

    def test_search_treats_wildcards_literally(self) -> None:
        self.assertEqual(self.foods.search("%"), [])
        self.assertEqual(self.foods.search("_"), [])
        self.foods.add_custom("100% Juice", 45, 0.5, 10, 0)
        self.assertEqual([f.name_en for f in self.foods.search("0%")], ["100% Juice"])

    def test_custom_food_lifecycle(self) -> None:
        food = self.foods.add_custom("Protein Shake", 120, 24, 3, 1.5, 330, "ml")
        stored = self.foods.fetch_detail(food.id)
        self.assertTrue(stored.is_custom)
        self.assertEqual(stored.serving_unit, "ml")
        self.foods.update_custom(stored.model_copy(update={"calories": 130}))
        self.assertEqual(self.foods.fetch_detail(food.id).calories, 130)
        self.foods.remove_custom(food.id)
        self.foods.remove_custom(food.id)
        with self.assertRaises(NotFound):
            self.foods.fetch_detail(food.id)

    def test_catalog_foods_are_read_only(self) -> None:
        with self.assertRaises(ValueError):
            self.foods.remove_custom("p1")
        with self.assertRaises(ValueError):
            self.foods.update_custom(self.foods.fetch_detail("p1"))
        with self.assertRaises(ValueError):
            self.foods.add_custom("   ", 1, 1, 1, 1)


class NutritionLogRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_nutrition.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.foods = FoodRepository(self.db_path)
        self.goals = NutritionGoalRepository(self.db_path)
        self.water = WaterLogRepository(self.db_path)
        self.logs = NutritionLogRepository(self.db_path, self.goals, self.water)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _log(self, food_id, name, meal, servings, calories, when, protein=10, carbs=5, fats=2):
        return self.logs.add_food_log(
            "u1", food_id, name, meal, servings, calories, protein, carbs, fats, logged_at=when
        )

    def test_totals_are_scaled_by_servings(self) -> None:
        entry = self._log("x1", "Stew", "lunch", 2, 100, at(12))
        self.assertEqual(entry.calories, 200)
        self.assertEqual(entry.protein, 20)
        self.assertEqual(entry.carbs, 10)
        self.assertEqual(entry.fats, 4)
        self.assertEqual(entry.meal_type, MealType.LUNCH)
        stored = self.logs.fetch_for_date("u1", "2024-05-01")
        self.assertEqual(stored, [entry])

    def test_date_bucket_follows_logged_offset(self) -> None:
        # 23:30+03:00 is already the next day in UTC
        entry = self._log("x1", "Late snack", "snack", 1, 150, at(23, 30))
        self.assertEqual(entry.date, "2024-05-01")
        self.assertTrue(entry.logged_at.startswith("2024-05-01T23:30:00"))
        self.assertTrue(self.logs.has_logged("u1", "2024-05-01"))
        self.assertFalse(self.logs.has_logged("u1", "2024-05-02"))

    def test_invalid_meal_type(self) -> None:
        with self.assertRaises(ValueError):
            self._log("x1", "Stew", "brunch", 1, 100, at(10))

    def test_daily_summary(self) -> None:
        self._log("p1", "Chicken Breast", "lunch", 1, 800, at(12), protein=40.4, carbs=20, fats=10)
        self._log("c1", "White Rice", "dinner", 1, 500, at(19), protein=10.2, carbs=80, fats=2)
        self._log("c1", "White Rice", "dinner", 1, 999, at(9, day=2))
        self.water.log_water("u1", 250, logged_at=at(8))
        self.water.log_water("u1", 300, logged_at=at(15))
        summary = self.logs.get_daily_nutrition_summary("u1", "2024-05-01")
        self.assertEqual(summary.total_calories, 1300)
        self.assertEqual(summary.total_protein, 51)
        self.assertEqual(summary.total_carbs, 100)
        self.assertEqual(summary.total_fats, 12)
        self.assertEqual(summary.total_water, 550)
        self.assertEqual(summary.goal_calories, 2000)
        self.assertEqual(summary.goal_water, 2000)
        self.assertEqual(len(summary.logs), 2)

    def test_summary_for_empty_day(self) -> None:
        summary = self.logs.get_daily_nutrition_summary("u1", "2024-05-03")
        self.assertEqual(summary.total_calories, 0)
        self.assertEqual(summary.logs, [])
        self.assertEqual(summary.goal_protein, 150)

    def test_meal_logs_have_every_bucket(self) -> None:
        self._log("f1", "Apple", "snack", 1, 52, at(10))
        self._log("c3", "Oatmeal", "breakfast", 1, 68, at(7))
        self._log("f2", "Banana", "snack", 1, 89, at(16))
        meals = self.logs.get_meal_logs("u1", "2024-05-01")
        self.assertEqual(set(meals), {"breakfast", "lunch", "dinner", "snack"})
        self.assertEqual(meals["lunch"], [])
        self.assertEqual([l.food_name for l in meals["snack"]], ["Apple", "Banana"])
        self.assertEqual(self.logs.get_meal_logs("u1", "2024-06-01")["breakfast"], [])

    def test_recent_foods(self) -> None:
        self._log("p1", "Chicken Breast", "lunch", 1, 165, at(12))
        self._log("f1", "Apple", "snack", 1, 52, at(15))
        self._log("p1", "Chicken Breast", "dinner", 1, 165, at(19))
        self._log("gone", "Deleted Food", "dinner", 1, 100, at(20))
        recent = self.logs.get_recent_foods("u1")
        self.assertEqual([f.id for f in recent], ["p1", "f1"])
        self.assertEqual([f.id for f in self.logs.get_recent_foods("u1", limit=1)], ["p1"])
        self.assertEqual(self.logs.get_recent_foods("u2"), [])

    def test_batch_insert_is_atomic(self) -> None:
        first = self.logs.build_log("u1", "f1", "Apple", "snack", 1, 52, 0.3, 14, 0.2, logged_at=at(10))
        clash = self.logs.build_log(
            "u1", "f2", "Banana", "snack", 1, 89, 1.1, 23, 0.3, logged_at=at(11), log_id=first.id
        )
        with self.assertRaises(WriteConflict):
            self.logs.add_food_logs([first, clash])
        self.assertEqual(self.logs.fetch_for_date("u1", "2024-05-01"), [])

    def test_delete_food_log(self) -> None:
        entry = self._log("f1", "Apple", "snack", 1, 52, at(10))
        self.logs.delete_food_log(entry.id)
        self.logs.delete_food_log(entry.id)
        self.assertEqual(self.logs.fetch_for_date("u1", "2024-05-01"), [])

    def test_goals(self) -> None:
        self.assertEqual(self.goals.fetch("u1"), NutritionGoals(user_id="u1"))
        self.assertTrue(self.goals.ensure_defaults("u1"))
        self.assertFalse(self.goals.ensure_defaults("u1"))
        self.goals.set(NutritionGoals(user_id="u1", daily_calories=1800, water_goal=2500))
        self.assertFalse(self.goals.ensure_defaults("u1"))
        goals = self.goals.fetch("u1")
        self.assertEqual(goals.daily_calories, 1800)
        self.assertEqual(goals.water_goal, 2500)
        summary = self.logs.get_daily_nutrition_summary("u1", "2024-05-01")
        self.assertEqual(summary.goal_calories, 1800)

    def test_goal_columns_fall_back_to_defaults(self) -> None:
        self.goals.execute(
            "INSERT INTO nutrition_goals (user_id, daily_calories, protein_goal) VALUES (?, ?, NULL);",
            ("u1", 2200),
        )
        goals = self.goals.fetch("u1")
        self.assertEqual(goals.daily_calories, 2200)
        self.assertEqual(goals.protein_goal, 150)

    def test_water_log(self) -> None:
        entry = self.water.log_water("u1", 400, logged_at=at(9))
        self.assertEqual(entry.date, "2024-05-01")
        self.assertEqual(self.water.fetch_for_date("u1", "2024-05-01"), [entry])
        self.water.delete(entry.id)
        self.assertEqual(self.water.total_for_date("u1", "2024-05-01"), 0.0)


class SavedMealRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_saved_meals.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.meals = SavedMealRepository(self.db_path)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_save_fetch_delete(self) -> None:
        meal = SavedMeal(
            user_id="u1",
            name="Post workout",
            foods=[
                SavedMealItem(food_id="p1", food_name="Chicken Breast", servings=2),
                SavedMealItem(food_id="c1", food_name="White Rice"),
            ],
            total_calories=460,
        )
        stored = self.meals.save(meal)
        self.assertIsNotNone(stored.created_at)
        self.assertEqual(stored.foods, meal.foods)
        self.assertEqual([m.id for m in self.meals.fetch_all_meals("u1")], [meal.id])
        self.assertEqual(self.meals.fetch_all_meals("u2"), [])
        self.meals.delete(meal.id)
        with self.assertRaises(NotFound):
            self.meals.fetch_detail(meal.id)


if __name__ == "__main__":
    unittest.main()
