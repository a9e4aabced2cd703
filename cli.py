import argparse
import datetime
import json
import logging
import os
import shutil
from typing import Optional

from config import YamlConfig, load_settings
from db import (
    Database,
    WorkoutRepository,
    FoodRepository,
    NutritionLogRepository,
)
from gamification_service import GamificationService
from models import Exercise, ExerciseType, Workout, WorkoutSet
from nutrition_service import NutritionService
from settings_schema import validate_settings

logger = logging.getLogger(__name__)


def init_db(db_path: str) -> None:
    Database(db_path)
    print(f"Database ready at {db_path}")


def export_workouts(db_path: str, user_id: str, output_dir: str = ".") -> int:
    """Write one JSON file per workout of ``user_id``; returns the file count."""
    workouts = WorkoutRepository(db_path)
    os.makedirs(output_dir, exist_ok=True)
    count = 0
    for workout in workouts.get_workouts(user_id):
        out_path = os.path.join(output_dir, f"workout_{workout.id}.json")
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(workouts.export_json(workout.id))
        count += 1
    logger.info(f"Exported {count} workouts to {output_dir}")
    return count


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def demo_data(db_path: str, user_id: str) -> None:
    """Populate the database with a demo workout and meal if empty."""
    workouts = WorkoutRepository(db_path)
    if workouts.get_workout_count(user_id):
        print("Database already contains workouts")
        return
    now = datetime.datetime.now(datetime.timezone.utc)
    workout = Workout(
        user_id=user_id,
        start_time=now - datetime.timedelta(hours=1),
        end_time=now,
        notes="Demo session",
        exercises=[
            Exercise(
                name="Bench Press",
                sets=[
                    WorkoutSet(reps=5, weight=100.0, completed=True),
                    WorkoutSet(reps=5, weight=105.0, completed=True),
                ],
            ),
            Exercise(
                name="Treadmill",
                exercise_type=ExerciseType.CARDIO,
                sets=[WorkoutSet(duration=900, completed=True)],
            ),
        ],
    )
    GamificationService(workouts).complete_workout(workout)
    foods = FoodRepository(db_path)
    logs = NutritionLogRepository(db_path)
    logs.goals.ensure_defaults(user_id)
    service = NutritionService(logs, foods)
    service.log_food(user_id, "p1", "lunch", 2)
    service.log_water(user_id, 500)
    print("Demo data inserted")


def print_summary(db_path: str, user_id: str, date: Optional[str] = None) -> None:
    service = NutritionService(NutritionLogRepository(db_path), FoodRepository(db_path))
    view = service.nutrition_for_date(user_id, date)
    summary = view["summary"]
    print(f"Nutrition for {summary.date}")
    for metric, values in view["progress"].items():
        print(
            f"  {metric}: {values['total']} / {values['goal']:g} "
            f"({values['progress']:.0%}, {values['remaining']:g} left)"
        )
    for meal, calories in view["meal_calories"].items():
        print(f"  {meal}: {calories} kcal")


def print_level(db_path: str, user_id: str) -> None:
    status = GamificationService(WorkoutRepository(db_path)).status(user_id)
    print(json.dumps(status, indent=2))


def search_foods(db_path: str, query: str) -> None:
    for food in FoodRepository(db_path).search(query):
        print(f"{food.id}\t{food.name_en}\t{food.calories:g} kcal / {food.serving_size:g}{food.serving_unit}")


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    parser.add_argument("--settings", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    init = sub.add_parser("init")
    init.add_argument("--db")

    exp = sub.add_parser("export")
    exp.add_argument("--db")
    exp.add_argument("--user")
    exp.add_argument("--out", default=".")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--db")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")
    rst.add_argument("--db")

    demo = sub.add_parser("demo")
    demo.add_argument("--db")
    demo.add_argument("--user")

    summ = sub.add_parser("summary")
    summ.add_argument("--db")
    summ.add_argument("--user")
    summ.add_argument("--date")

    lvl = sub.add_parser("level")
    lvl.add_argument("--db")
    lvl.add_argument("--user")

    srch = sub.add_parser("search")
    srch.add_argument("query")
    srch.add_argument("--db")

    vac = sub.add_parser("vacuum")
    vac.add_argument("--db")

    cfg = sub.add_parser("config")
    cfg.add_argument("key")
    cfg.add_argument("value")

    args = parser.parse_args(argv)
    settings = load_settings(args.settings)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    db_path = getattr(args, "db", None) or settings.db_path
    user_id = getattr(args, "user", None) or settings.default_user_id

    if args.cmd == "init":
        init_db(db_path)
    elif args.cmd == "export":
        export_workouts(db_path, user_id, args.out)
    elif args.cmd == "backup":
        backup_db(db_path, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, db_path)
    elif args.cmd == "demo":
        demo_data(db_path, user_id)
    elif args.cmd == "summary":
        print_summary(db_path, user_id, args.date)
    elif args.cmd == "level":
        print_level(db_path, user_id)
    elif args.cmd == "search":
        search_foods(db_path, args.query)
    elif args.cmd == "vacuum":
        Database(db_path, seed_catalog=False).vacuum()
    elif args.cmd == "config":
        store = YamlConfig(args.settings)
        data = store.load()
        data[args.key] = args.value
        store.save(validate_settings(data).model_dump())


if __name__ == "__main__":
    main()
