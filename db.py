import sqlite3
import aiosqlite
import csv
import os
import json
import logging
import datetime
from contextlib import contextmanager, asynccontextmanager
from typing import Dict, List, Optional, Tuple

from errors import (
    StorageError,
    StorageInitError,
    StorageIOError,
    WriteConflict,
    NotFound,
)
from models import (
    Exercise,
    ExerciseType,
    Food,
    FoodSource,
    MealType,
    NutritionGoals,
    NutritionLog,
    DailyNutritionSummary,
    SavedMeal,
    SavedMealItem,
    WaterLog,
    Workout,
    WorkoutSet,
    new_id,
)
from tools import DateTools, MathTools

logger = logging.getLogger(__name__)


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "workouts": """CREATE TABLE workouts (
                id TEXT PRIMARY KEY,
                userId TEXT NOT NULL,
                startTime TEXT NOT NULL,
                endTime TEXT,
                notes TEXT,
                xpEarned INTEGER DEFAULT 0,
                createdAt TEXT DEFAULT CURRENT_TIMESTAMP
            );""",
        "exercises": """CREATE TABLE exercises (
                id TEXT PRIMARY KEY,
                workoutId TEXT NOT NULL,
                name TEXT NOT NULL,
                exerciseType TEXT NOT NULL,
                orderIndex INTEGER,
                FOREIGN KEY (workoutId) REFERENCES workouts (id) ON DELETE CASCADE
            );""",
        "sets": """CREATE TABLE sets (
                id TEXT PRIMARY KEY,
                exerciseId TEXT NOT NULL,
                reps INTEGER,
                weight REAL,
                duration INTEGER,
                completed INTEGER DEFAULT 0,
                orderIndex INTEGER,
                FOREIGN KEY (exerciseId) REFERENCES exercises (id) ON DELETE CASCADE
            );""",
        "foods": """CREATE TABLE foods (
                id TEXT PRIMARY KEY,
                name_en TEXT NOT NULL,
                name_ru TEXT,
                calories REAL NOT NULL,
                protein REAL NOT NULL,
                carbs REAL NOT NULL,
                fats REAL NOT NULL,
                serving_size REAL DEFAULT 100,
                serving_unit TEXT DEFAULT 'g',
                source TEXT DEFAULT 'local',
                usda_fdc_id TEXT,
                is_custom INTEGER DEFAULT 0,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );""",
        # food_id is a weak reference: the food name is copied into the row
        "nutrition_logs": """CREATE TABLE nutrition_logs (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                food_id TEXT NOT NULL,
                food_name TEXT NOT NULL,
                meal_type TEXT NOT NULL,
                servings REAL NOT NULL,
                calories REAL NOT NULL,
                protein REAL NOT NULL,
                carbs REAL NOT NULL,
                fats REAL NOT NULL,
                logged_at TEXT NOT NULL,
                date TEXT NOT NULL
            );""",
        "nutrition_goals": """CREATE TABLE nutrition_goals (
                user_id TEXT PRIMARY KEY,
                daily_calories REAL DEFAULT 2000,
                protein_goal REAL DEFAULT 150,
                carbs_goal REAL DEFAULT 250,
                fats_goal REAL DEFAULT 65,
                water_goal REAL DEFAULT 2000
            );""",
        "water_logs": """CREATE TABLE water_logs (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                amount REAL NOT NULL,
                logged_at TEXT NOT NULL,
                date TEXT NOT NULL
            );""",
        "saved_meals": """CREATE TABLE saved_meals (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                foods TEXT NOT NULL,
                total_calories REAL NOT NULL,
                total_protein REAL NOT NULL,
                total_carbs REAL NOT NULL,
                total_fats REAL NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            );""",
    }

    _INDEX_DEFINITIONS = [
        "CREATE INDEX IF NOT EXISTS idx_workouts_user ON workouts(userId, startTime);",
        "CREATE INDEX IF NOT EXISTS idx_exercises_workout ON exercises(workoutId);",
        "CREATE INDEX IF NOT EXISTS idx_sets_exercise ON sets(exerciseId);",
        "CREATE INDEX IF NOT EXISTS idx_nutrition_logs_date ON nutrition_logs(user_id, date);",
        "CREATE INDEX IF NOT EXISTS idx_water_logs_date ON water_logs(user_id, date);",
        "CREATE INDEX IF NOT EXISTS idx_saved_meals_user ON saved_meals(user_id);",
    ]

    def __init__(self, db_path: str = "fitnessrpg.db", seed_catalog: bool = True) -> None:
        self._db_path = db_path
        self.ensure_schema()
        if seed_catalog:
            try:
                self._import_food_catalog()
            except StorageError as e:
                logger.error(f"Catalog seeding failed for {db_path}: {e}")
                raise StorageInitError(f"cannot seed food catalog in {db_path}: {e}") from e

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StorageIOError(f"cannot open {self._db_path}: {e}") from e
        try:
            connection.execute("PRAGMA foreign_keys=ON;")
            connection.create_function("casefold", 1, _casefold, deterministic=True)
            yield connection
            connection.commit()
        except sqlite3.IntegrityError as e:
            connection.rollback()
            logger.error(f"Rolled back write on {self._db_path}: {e}")
            raise WriteConflict(str(e)) from e
        except sqlite3.Error as e:
            connection.rollback()
            logger.error(f"Rolled back transaction on {self._db_path}: {e}")
            raise StorageIOError(str(e)) from e
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()

    def ensure_schema(self) -> None:
        """Create every table and index that does not exist yet."""
        try:
            with self._connection() as conn:
                for table, sql in self._TABLE_DEFINITIONS.items():
                    self._ensure_table(conn, table, sql)
                for sql in self._INDEX_DEFINITIONS:
                    conn.execute(sql)
        except StorageError as e:
            logger.error(f"Schema initialisation failed for {self._db_path}: {e}")
            raise StorageInitError(f"cannot initialise {self._db_path}: {e}") from e
        logger.debug(f"Schema ready at {self._db_path}")

    def _ensure_table(self, conn: sqlite3.Connection, table: str, sql: str) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)

    def _import_food_catalog(self) -> None:
        csv_path = os.path.join(os.path.dirname(__file__), "food_catalog.csv")
        if not os.path.exists(csv_path):
            return
        with open(csv_path, newline="", encoding="utf-8") as csvfile:
            reader = csv.DictReader(csvfile)
            records = [
                (
                    row["id"],
                    row["name_en"],
                    row.get("name_ru") or None,
                    float(row["calories"]),
                    float(row["protein"]),
                    float(row["carbs"]),
                    float(row["fats"]),
                    float(row.get("serving_size") or 100),
                    row.get("serving_unit") or "g",
                )
                for row in reader
            ]
        with self._connection() as conn:
            before = conn.total_changes
            conn.executemany(
                "INSERT OR IGNORE INTO foods (id, name_en, name_ru, calories, protein, carbs, fats, serving_size, serving_unit, source, is_custom) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'local', 0);",
                records,
            )
            added = conn.total_changes - before
        if added:
            logger.info(f"Populated {added} catalog foods")

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def fetch_one(self, query: str, params: Tuple = ()) -> Optional[Tuple]:
        rows = self.fetch_all(query, params)
        return rows[0] if rows else None

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


def _workout_from_row(row: Tuple, exercises: List[Exercise]) -> Workout:
    wid, user_id, start, end, notes, xp = row
    return Workout(
        id=wid,
        user_id=user_id,
        start_time=DateTools.parse(start),
        end_time=DateTools.parse(end),
        notes=notes,
        xp_earned=int(xp or 0),
        exercises=exercises,
    )


def _set_from_row(row: Tuple) -> WorkoutSet:
    sid, reps, weight, duration, completed = row
    return WorkoutSet(
        id=sid,
        reps=reps,
        weight=weight,
        duration=duration,
        completed=completed == 1,
    )


_WORKOUT_COLUMNS = "id, userId, startTime, endTime, notes, xpEarned"
_EXERCISE_COLUMNS = "id, name, exerciseType"
_SET_COLUMNS = "id, reps, weight, duration, completed"

# shared by the sync and async save paths
_INSERT_WORKOUT = (
    "INSERT INTO workouts (id, userId, startTime, endTime, notes, xpEarned) "
    "VALUES (?, ?, ?, ?, ?, ?);"
)
_INSERT_EXERCISE = (
    "INSERT INTO exercises (id, workoutId, name, exerciseType, orderIndex) "
    "VALUES (?, ?, ?, ?, ?);"
)
_INSERT_SET = (
    "INSERT INTO sets (id, exerciseId, reps, weight, duration, completed, orderIndex) "
    "VALUES (?, ?, ?, ?, ?, ?, ?);"
)


def _workout_params(workout: Workout) -> Tuple:
    return (
        workout.id,
        workout.user_id,
        DateTools.utc_iso(workout.start_time),
        DateTools.utc_iso(workout.end_time) if workout.end_time else None,
        workout.notes,
        workout.xp_earned or 0,
    )


def _exercise_params(workout_id: str, position: int, exercise: Exercise) -> Tuple:
    return (
        exercise.id,
        workout_id,
        exercise.name,
        ExerciseType(exercise.exercise_type).value,
        position,
    )


def _set_params(exercise_id: str, position: int, item: WorkoutSet) -> Tuple:
    return (
        item.id,
        exercise_id,
        item.reps,
        item.weight,
        item.duration,
        1 if item.completed else 0,
        position,
    )


class SetRepository(BaseRepository):
    """Repository for sets table reads."""

    def fetch_for_exercise(self, exercise_id: str) -> List[WorkoutSet]:
        rows = self.fetch_all(
            f"SELECT {_SET_COLUMNS} FROM sets WHERE exerciseId = ? ORDER BY orderIndex;",
            (exercise_id,),
        )
        return [_set_from_row(r) for r in rows]

    def count_for_workout(self, workout_id: str) -> int:
        row = self.fetch_one(
            "SELECT COUNT(*) FROM sets JOIN exercises ON sets.exerciseId = exercises.id "
            "WHERE exercises.workoutId = ?;",
            (workout_id,),
        )
        return int(row[0]) if row else 0


class ExerciseRepository(BaseRepository):
    """Repository for exercise table reads."""

    def __init__(
        self, db_path: str = "fitnessrpg.db", sets: Optional[SetRepository] = None
    ) -> None:
        super().__init__(db_path, seed_catalog=False)
        self.sets = sets or SetRepository(db_path, seed_catalog=False)

    def fetch_for_workout(self, workout_id: str) -> List[Exercise]:
        rows = self.fetch_all(
            f"SELECT {_EXERCISE_COLUMNS} FROM exercises WHERE workoutId = ? ORDER BY orderIndex;",
            (workout_id,),
        )
        return [
            Exercise(
                id=eid,
                name=name,
                exercise_type=ExerciseType(etype),
                sets=self.sets.fetch_for_exercise(eid),
            )
            for eid, name, etype in rows
        ]

    def count_for_workout(self, workout_id: str) -> int:
        row = self.fetch_one(
            "SELECT COUNT(*) FROM exercises WHERE workoutId = ?;", (workout_id,)
        )
        return int(row[0]) if row else 0


class WorkoutRepository(BaseRepository):
    """Repository for complete workouts with their exercises and sets."""

    def __init__(
        self,
        db_path: str = "fitnessrpg.db",
        exercises: Optional[ExerciseRepository] = None,
    ) -> None:
        super().__init__(db_path, seed_catalog=False)
        self.exercises = exercises or ExerciseRepository(db_path)

    @staticmethod
    def _insert_workout(cursor: sqlite3.Cursor, workout: Workout) -> None:
        cursor.execute(_INSERT_WORKOUT, _workout_params(workout))

    @staticmethod
    def _insert_exercise(
        cursor: sqlite3.Cursor, workout_id: str, position: int, exercise: Exercise
    ) -> None:
        cursor.execute(_INSERT_EXERCISE, _exercise_params(workout_id, position, exercise))

    @staticmethod
    def _insert_set(
        cursor: sqlite3.Cursor, exercise_id: str, position: int, item: WorkoutSet
    ) -> None:
        cursor.execute(_INSERT_SET, _set_params(exercise_id, position, item))

    def save_workout(self, workout: Workout) -> str:
        """Persist ``workout`` with all exercises and sets in one transaction.

        Positions follow the list order of ``workout.exercises`` and of each
        ``exercise.sets``. Nothing is stored if any insert fails.
        """
        with self._connection() as conn:
            cursor = conn.cursor()
            self._insert_workout(cursor, workout)
            for position, exercise in enumerate(workout.exercises):
                self._insert_exercise(cursor, workout.id, position, exercise)
                for set_position, item in enumerate(exercise.sets):
                    self._insert_set(cursor, exercise.id, set_position, item)
        logger.info(f"Workout saved: {workout.id}")
        return workout.id

    def get_workouts(self, user_id: str) -> List[Workout]:
        """Return the user's workouts, newest start first, fully populated."""
        rows = self.fetch_all(
            f"SELECT {_WORKOUT_COLUMNS} FROM workouts WHERE userId = ? "
            "ORDER BY startTime DESC, rowid DESC;",
            (user_id,),
        )
        workouts = [
            _workout_from_row(row, self.exercises.fetch_for_workout(row[0]))
            for row in rows
        ]
        logger.debug(f"Retrieved {len(workouts)} workouts for {user_id}")
        return workouts

    def get_workout(self, workout_id: str) -> Workout:
        row = self.fetch_one(
            f"SELECT {_WORKOUT_COLUMNS} FROM workouts WHERE id = ?;", (workout_id,)
        )
        if row is None:
            raise NotFound("workout not found")
        return _workout_from_row(row, self.exercises.fetch_for_workout(workout_id))

    def get_workout_count(self, user_id: str) -> int:
        row = self.fetch_one(
            "SELECT COUNT(*) FROM workouts WHERE userId = ?;", (user_id,)
        )
        return int(row[0]) if row else 0

    def get_weekly_workout_count(
        self, user_id: str, now: Optional[datetime.datetime] = None
    ) -> int:
        """Count workouts started within the rolling 7 days before ``now``."""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        since = DateTools.utc_iso(now - datetime.timedelta(days=7))
        row = self.fetch_one(
            "SELECT COUNT(*) FROM workouts WHERE userId = ? AND startTime >= ?;",
            (user_id, since),
        )
        return int(row[0]) if row else 0

    def delete_workout(self, workout_id: str) -> None:
        """Delete a workout with its exercises and sets; unknown ids are ignored."""
        removed = self.execute("DELETE FROM workouts WHERE id = ?;", (workout_id,))
        if removed:
            logger.info(f"Workout deleted: {workout_id}")

    def delete_all(self) -> None:
        self._delete_all("sets")
        self._delete_all("exercises")
        self._delete_all("workouts")
        logger.info("All workout data cleared")

    def export_json(self, workout_id: str) -> str:
        return self.get_workout(workout_id).model_dump_json(indent=2)


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        try:
            conn = await aiosqlite.connect(self._db_path)
        except sqlite3.Error as e:
            raise StorageIOError(f"cannot open {self._db_path}: {e}") from e
        try:
            await conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
            await conn.commit()
        except sqlite3.IntegrityError as e:
            await conn.rollback()
            logger.error(f"Rolled back write on {self._db_path}: {e}")
            raise WriteConflict(str(e)) from e
        except sqlite3.Error as e:
            await conn.rollback()
            logger.error(f"Rolled back transaction on {self._db_path}: {e}")
            raise StorageIOError(str(e)) from e
        except Exception:
            await conn.rollback()
            raise
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return [tuple(r) for r in rows]


class AsyncWorkoutRepository(AsyncBaseRepository):
    """Async repository for complete workouts."""

    def __init__(self, db_path: str = "fitnessrpg.db") -> None:
        super().__init__(db_path, seed_catalog=False)

    @staticmethod
    async def _insert_set(
        conn: aiosqlite.Connection, exercise_id: str, position: int, item: WorkoutSet
    ) -> None:
        await conn.execute(_INSERT_SET, _set_params(exercise_id, position, item))

    async def save_workout(self, workout: Workout) -> str:
        """Same all-or-nothing contract as :meth:`WorkoutRepository.save_workout`."""
        async with self._async_connection() as conn:
            await conn.execute(_INSERT_WORKOUT, _workout_params(workout))
            for position, exercise in enumerate(workout.exercises):
                await conn.execute(
                    _INSERT_EXERCISE, _exercise_params(workout.id, position, exercise)
                )
                for set_position, item in enumerate(exercise.sets):
                    await self._insert_set(conn, exercise.id, set_position, item)
        logger.info(f"Workout saved: {workout.id}")
        return workout.id

    async def get_workouts(self, user_id: str) -> List[Workout]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(
                f"SELECT {_WORKOUT_COLUMNS} FROM workouts WHERE userId = ? "
                "ORDER BY startTime DESC, rowid DESC;",
                (user_id,),
            )
            rows = await cursor.fetchall()
            workouts: List[Workout] = []
            for row in rows:
                cursor = await conn.execute(
                    f"SELECT {_EXERCISE_COLUMNS} FROM exercises WHERE workoutId = ? ORDER BY orderIndex;",
                    (row[0],),
                )
                exercises: List[Exercise] = []
                for eid, name, etype in await cursor.fetchall():
                    set_cursor = await conn.execute(
                        f"SELECT {_SET_COLUMNS} FROM sets WHERE exerciseId = ? ORDER BY orderIndex;",
                        (eid,),
                    )
                    sets = [_set_from_row(tuple(s)) for s in await set_cursor.fetchall()]
                    exercises.append(
                        Exercise(
                            id=eid,
                            name=name,
                            exercise_type=ExerciseType(etype),
                            sets=sets,
                        )
                    )
                workouts.append(_workout_from_row(tuple(row), exercises))
            return workouts

    async def get_workout_count(self, user_id: str) -> int:
        rows = await self.fetch_all(
            "SELECT COUNT(*) FROM workouts WHERE userId = ?;", (user_id,)
        )
        return int(rows[0][0]) if rows else 0

    async def get_weekly_workout_count(
        self, user_id: str, now: Optional[datetime.datetime] = None
    ) -> int:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        since = DateTools.utc_iso(now - datetime.timedelta(days=7))
        rows = await self.fetch_all(
            "SELECT COUNT(*) FROM workouts WHERE userId = ? AND startTime >= ?;",
            (user_id, since),
        )
        return int(rows[0][0]) if rows else 0

    async def delete_workout(self, workout_id: str) -> None:
        await self.execute("DELETE FROM workouts WHERE id = ?;", (workout_id,))


_FOOD_COLUMNS = (
    "id, name_en, name_ru, calories, protein, carbs, fats, "
    "serving_size, serving_unit, source, usda_fdc_id, is_custom"
)


def _food_from_row(row: Tuple) -> Food:
    (
        fid,
        name_en,
        name_ru,
        calories,
        protein,
        carbs,
        fats,
        serving_size,
        serving_unit,
        source,
        usda_fdc_id,
        is_custom,
    ) = row
    return Food(
        id=fid,
        name_en=name_en,
        name_ru=name_ru,
        calories=calories,
        protein=protein,
        carbs=carbs,
        fats=fats,
        serving_size=serving_size if serving_size is not None else 100.0,
        serving_unit=serving_unit or "g",
        source=FoodSource(source or "local"),
        usda_fdc_id=usda_fdc_id,
        is_custom=bool(is_custom),
    )


class FoodRepository(BaseRepository):
    """Repository for the food catalog and custom foods."""

    SEARCH_LIMIT = 50

    def search(self, query: str, limit: int = SEARCH_LIMIT) -> List[Food]:
        """Case-insensitive substring search on the English name, A to Z.

        Both sides are Unicode case-folded, so "émincé" matches "Émincé".
        At most ``SEARCH_LIMIT`` rows are returned whatever ``limit`` is.
        """
        escaped = (
            query.casefold().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        rows = self.fetch_all(
            f"SELECT {_FOOD_COLUMNS} FROM foods WHERE casefold(name_en) LIKE ? ESCAPE '\\' "
            "ORDER BY name_en COLLATE NOCASE, name_en LIMIT ?;",
            (f"%{escaped}%", max(0, min(limit, self.SEARCH_LIMIT))),
        )
        logger.debug(f"Found {len(rows)} foods for {query!r}")
        return [_food_from_row(r) for r in rows]

    def add(self, food: Food) -> str:
        self.execute(
            f"INSERT INTO foods ({_FOOD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                food.id,
                food.name_en,
                food.name_ru,
                food.calories,
                food.protein,
                food.carbs,
                food.fats,
                food.serving_size,
                food.serving_unit,
                FoodSource(food.source).value,
                food.usda_fdc_id,
                int(food.is_custom),
            ),
        )
        return food.id

    def add_custom(
        self,
        name_en: str,
        calories: float,
        protein: float,
        carbs: float,
        fats: float,
        serving_size: float = 100.0,
        serving_unit: str = "g",
        name_ru: Optional[str] = None,
    ) -> Food:
        if not name_en.strip():
            raise ValueError("name must not be empty")
        food = Food(
            name_en=name_en.strip(),
            name_ru=name_ru,
            calories=calories,
            protein=protein,
            carbs=carbs,
            fats=fats,
            serving_size=serving_size,
            serving_unit=serving_unit,
            source=FoodSource.CUSTOM,
            is_custom=True,
        )
        self.add(food)
        logger.info(f"Custom food added: {food.name_en}")
        return food

    def fetch_detail(self, food_id: str) -> Food:
        row = self.fetch_one(
            f"SELECT {_FOOD_COLUMNS} FROM foods WHERE id = ?;", (food_id,)
        )
        if row is None:
            raise NotFound("food not found")
        return _food_from_row(row)

    def update_custom(self, food: Food) -> None:
        current = self.fetch_detail(food.id)
        if not current.is_custom:
            raise ValueError("catalog foods are read-only")
        self.execute(
            "UPDATE foods SET name_en = ?, name_ru = ?, calories = ?, protein = ?, carbs = ?, fats = ?, "
            "serving_size = ?, serving_unit = ? WHERE id = ?;",
            (
                food.name_en,
                food.name_ru,
                food.calories,
                food.protein,
                food.carbs,
                food.fats,
                food.serving_size,
                food.serving_unit,
                food.id,
            ),
        )

    def remove_custom(self, food_id: str) -> None:
        row = self.fetch_one("SELECT is_custom FROM foods WHERE id = ?;", (food_id,))
        if row is None:
            return
        if not row[0]:
            raise ValueError("catalog foods are read-only")
        self.execute("DELETE FROM foods WHERE id = ?;", (food_id,))

    def count(self) -> int:
        row = self.fetch_one("SELECT COUNT(*) FROM foods;")
        return int(row[0]) if row else 0


class NutritionGoalRepository(BaseRepository):
    """Repository for per-user daily nutrition targets."""

    def fetch(self, user_id: str) -> NutritionGoals:
        """Return the user's goals, or the defaults when none are stored."""
        defaults = NutritionGoals(user_id=user_id)
        row = self.fetch_one(
            "SELECT daily_calories, protein_goal, carbs_goal, fats_goal, water_goal "
            "FROM nutrition_goals WHERE user_id = ?;",
            (user_id,),
        )
        if row is None:
            return defaults
        calories, protein, carbs, fats, water = row
        return NutritionGoals(
            user_id=user_id,
            daily_calories=calories if calories is not None else defaults.daily_calories,
            protein_goal=protein if protein is not None else defaults.protein_goal,
            carbs_goal=carbs if carbs is not None else defaults.carbs_goal,
            fats_goal=fats if fats is not None else defaults.fats_goal,
            water_goal=water if water is not None else defaults.water_goal,
        )

    def set(self, goals: NutritionGoals) -> None:
        self.execute(
            "INSERT INTO nutrition_goals (user_id, daily_calories, protein_goal, carbs_goal, fats_goal, water_goal) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(user_id) DO UPDATE SET daily_calories=excluded.daily_calories, "
            "protein_goal=excluded.protein_goal, carbs_goal=excluded.carbs_goal, "
            "fats_goal=excluded.fats_goal, water_goal=excluded.water_goal;",
            (
                goals.user_id,
                goals.daily_calories,
                goals.protein_goal,
                goals.carbs_goal,
                goals.fats_goal,
                goals.water_goal,
            ),
        )
        logger.info(f"Nutrition goals updated for {goals.user_id}")

    def ensure_defaults(self, user_id: str) -> bool:
        """Store the default goals unless the user already has a row."""
        goals = NutritionGoals(user_id=user_id)
        added = self.execute(
            "INSERT OR IGNORE INTO nutrition_goals (user_id, daily_calories, protein_goal, carbs_goal, fats_goal, water_goal) "
            "VALUES (?, ?, ?, ?, ?, ?);",
            (
                user_id,
                goals.daily_calories,
                goals.protein_goal,
                goals.carbs_goal,
                goals.fats_goal,
                goals.water_goal,
            ),
        )
        return added > 0


_WATER_COLUMNS = "id, user_id, amount, logged_at, date"


class WaterLogRepository(BaseRepository):
    """Repository for water intake entries."""

    def log_water(
        self,
        user_id: str,
        amount: float,
        *,
        logged_at: datetime.datetime,
        log_id: Optional[str] = None,
    ) -> WaterLog:
        """Insert one entry. ``amount`` is expected to be positive (ml)."""
        entry = WaterLog(
            id=log_id or new_id(),
            user_id=user_id,
            amount=amount,
            logged_at=DateTools.iso_timestamp(logged_at),
            date=DateTools.date_bucket(logged_at),
        )
        self.execute(
            f"INSERT INTO water_logs ({_WATER_COLUMNS}) VALUES (?, ?, ?, ?, ?);",
            (entry.id, entry.user_id, entry.amount, entry.logged_at, entry.date),
        )
        logger.info(f"Logged {amount}ml water for {user_id}")
        return entry

    def fetch_for_date(self, user_id: str, date: str) -> List[WaterLog]:
        rows = self.fetch_all(
            f"SELECT {_WATER_COLUMNS} FROM water_logs WHERE user_id = ? AND date = ? ORDER BY logged_at;",
            (user_id, date),
        )
        return [
            WaterLog(id=wid, user_id=uid, amount=amount, logged_at=at, date=d)
            for wid, uid, amount, at, d in rows
        ]

    def total_for_date(self, user_id: str, date: str) -> float:
        row = self.fetch_one(
            "SELECT SUM(amount) FROM water_logs WHERE user_id = ? AND date = ?;",
            (user_id, date),
        )
        return float(row[0] or 0.0) if row else 0.0

    def delete(self, log_id: str) -> None:
        self.execute("DELETE FROM water_logs WHERE id = ?;", (log_id,))


_LOG_COLUMNS = (
    "id, user_id, food_id, food_name, meal_type, servings, "
    "calories, protein, carbs, fats, logged_at, date"
)


def _log_from_row(row: Tuple) -> NutritionLog:
    keys = [c.strip() for c in _LOG_COLUMNS.split(",")]
    return NutritionLog(**dict(zip(keys, row)))


class NutritionLogRepository(BaseRepository):
    """Repository for food logs and the per-day views built from them."""

    def __init__(
        self,
        db_path: str = "fitnessrpg.db",
        goals: Optional[NutritionGoalRepository] = None,
        water: Optional[WaterLogRepository] = None,
    ) -> None:
        super().__init__(db_path, seed_catalog=False)
        self.goals = goals or NutritionGoalRepository(db_path, seed_catalog=False)
        self.water = water or WaterLogRepository(db_path, seed_catalog=False)

    @staticmethod
    def build_log(
        user_id: str,
        food_id: str,
        food_name: str,
        meal_type: str,
        servings: float,
        calories: float,
        protein: float,
        carbs: float,
        fats: float,
        *,
        logged_at: datetime.datetime,
        log_id: Optional[str] = None,
    ) -> NutritionLog:
        """Return an unsaved log whose totals are the per-serving values times ``servings``.

        ``servings`` must be positive; callers validate it. The date bucket is
        taken from ``logged_at`` as the caller's local date.
        """
        return NutritionLog(
            id=log_id or new_id(),
            user_id=user_id,
            food_id=food_id,
            food_name=food_name,
            meal_type=MealType(meal_type),
            servings=servings,
            calories=MathTools.scaled(calories, servings),
            protein=MathTools.scaled(protein, servings),
            carbs=MathTools.scaled(carbs, servings),
            fats=MathTools.scaled(fats, servings),
            logged_at=DateTools.iso_timestamp(logged_at),
            date=DateTools.date_bucket(logged_at),
        )

    def add_food_log(
        self,
        user_id: str,
        food_id: str,
        food_name: str,
        meal_type: str,
        servings: float,
        calories: float,
        protein: float,
        carbs: float,
        fats: float,
        *,
        logged_at: datetime.datetime,
        log_id: Optional[str] = None,
    ) -> NutritionLog:
        entry = self.build_log(
            user_id,
            food_id,
            food_name,
            meal_type,
            servings,
            calories,
            protein,
            carbs,
            fats,
            logged_at=logged_at,
            log_id=log_id,
        )
        self.add_food_logs([entry])
        logger.info(f"Added {food_name} to {entry.meal_type.value}")
        return entry

    def add_food_logs(self, entries: List[NutritionLog]) -> None:
        """Insert prepared logs in one transaction; none are kept if one fails."""
        with self._connection() as conn:
            conn.executemany(
                f"INSERT INTO nutrition_logs ({_LOG_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                [
                    (
                        entry.id,
                        entry.user_id,
                        entry.food_id,
                        entry.food_name,
                        MealType(entry.meal_type).value,
                        entry.servings,
                        entry.calories,
                        entry.protein,
                        entry.carbs,
                        entry.fats,
                        entry.logged_at,
                        entry.date,
                    )
                    for entry in entries
                ],
            )

    def get_recent_foods(self, user_id: str, limit: int = 10) -> List[Food]:
        """Distinct catalog foods from the user's logs, most recent first."""
        columns = ", ".join(f"foods.{c.strip()}" for c in _FOOD_COLUMNS.split(","))
        rows = self.fetch_all(
            f"SELECT {columns}, MAX(nutrition_logs.logged_at) AS last_logged "
            "FROM nutrition_logs JOIN foods ON nutrition_logs.food_id = foods.id "
            "WHERE nutrition_logs.user_id = ? "
            "GROUP BY foods.id ORDER BY last_logged DESC LIMIT ?;",
            (user_id, limit),
        )
        return [_food_from_row(r[:-1]) for r in rows]

    def fetch_for_date(self, user_id: str, date: str) -> List[NutritionLog]:
        rows = self.fetch_all(
            f"SELECT {_LOG_COLUMNS} FROM nutrition_logs WHERE user_id = ? AND date = ? "
            "ORDER BY logged_at, rowid;",
            (user_id, date),
        )
        return [_log_from_row(r) for r in rows]

    def get_daily_nutrition_summary(self, user_id: str, date: str) -> DailyNutritionSummary:
        logs = self.fetch_for_date(user_id, date)
        goals = self.goals.fetch(user_id)
        water = self.water.total_for_date(user_id, date)
        return DailyNutritionSummary(
            date=date,
            total_calories=MathTools.round_half_up(MathTools.total(l.calories for l in logs)),
            total_protein=MathTools.round_half_up(MathTools.total(l.protein for l in logs)),
            total_carbs=MathTools.round_half_up(MathTools.total(l.carbs for l in logs)),
            total_fats=MathTools.round_half_up(MathTools.total(l.fats for l in logs)),
            total_water=MathTools.round_half_up(water),
            goal_calories=goals.daily_calories,
            goal_protein=goals.protein_goal,
            goal_carbs=goals.carbs_goal,
            goal_fats=goals.fats_goal,
            goal_water=goals.water_goal,
            logs=logs,
        )

    def get_meal_logs(self, user_id: str, date: str) -> Dict[str, List[NutritionLog]]:
        """Return the day's logs split by meal type; every bucket is present."""
        grouped: Dict[str, List[NutritionLog]] = {m.value: [] for m in MealType}
        for entry in self.fetch_for_date(user_id, date):
            grouped[entry.meal_type.value].append(entry)
        return grouped

    def delete_food_log(self, log_id: str) -> None:
        removed = self.execute("DELETE FROM nutrition_logs WHERE id = ?;", (log_id,))
        if removed:
            logger.info(f"Food log deleted: {log_id}")

    def has_logged(self, user_id: str, date: str) -> bool:
        row = self.fetch_one(
            "SELECT COUNT(*) FROM nutrition_logs WHERE user_id = ? AND date = ?;",
            (user_id, date),
        )
        return bool(row and row[0])


class SavedMealRepository(BaseRepository):
    """Repository for named food combinations that can be logged at once."""

    _COLUMNS = (
        "id, user_id, name, foods, total_calories, total_protein, "
        "total_carbs, total_fats, created_at"
    )

    @staticmethod
    def _from_row(row: Tuple) -> SavedMeal:
        mid, user_id, name, foods, cal, prot, carbs, fats, created = row
        return SavedMeal(
            id=mid,
            user_id=user_id,
            name=name,
            foods=[SavedMealItem(**item) for item in json.loads(foods)],
            total_calories=cal,
            total_protein=prot,
            total_carbs=carbs,
            total_fats=fats,
            created_at=created,
        )

    def save(self, meal: SavedMeal) -> SavedMeal:
        foods = json.dumps([item.model_dump() for item in meal.foods])
        self.execute(
            "INSERT INTO saved_meals (id, user_id, name, foods, total_calories, total_protein, total_carbs, total_fats, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP));",
            (
                meal.id,
                meal.user_id,
                meal.name,
                foods,
                meal.total_calories,
                meal.total_protein,
                meal.total_carbs,
                meal.total_fats,
                meal.created_at,
            ),
        )
        logger.info(f"Saved meal stored: {meal.name}")
        return self.fetch_detail(meal.id)

    def fetch_all_meals(self, user_id: str) -> List[SavedMeal]:
        rows = self.fetch_all(
            f"SELECT {self._COLUMNS} FROM saved_meals WHERE user_id = ? ORDER BY created_at DESC, rowid DESC;",
            (user_id,),
        )
        return [self._from_row(r) for r in rows]

    def fetch_detail(self, meal_id: str) -> SavedMeal:
        row = self.fetch_one(
            f"SELECT {self._COLUMNS} FROM saved_meals WHERE id = ?;", (meal_id,)
        )
        if row is None:
            raise NotFound("saved meal not found")
        return self._from_row(row)

    def delete(self, meal_id: str) -> None:
        self.execute("DELETE FROM saved_meals WHERE id = ?;", (meal_id,))
