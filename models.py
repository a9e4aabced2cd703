"""Domain models shared by the repositories, services and REST layer."""
import datetime
import enum
import uuid
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def new_id() -> str:
    return uuid.uuid4().hex


class ExerciseType(str, enum.Enum):
    STRENGTH = "strength"
    CARDIO = "cardio"
    FLEXIBILITY = "flexibility"


class MealType(str, enum.Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class FoodSource(str, enum.Enum):
    LOCAL = "local"
    EXTERNAL = "external"
    CUSTOM = "custom"


class WorkoutSet(BaseModel):
    """A single set; position inside its exercise is implied by list order."""

    id: str = Field(default_factory=new_id)
    reps: Optional[int] = None
    weight: Optional[float] = None
    duration: Optional[int] = None
    completed: bool = False


class Exercise(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    exercise_type: ExerciseType = ExerciseType.STRENGTH
    sets: List[WorkoutSet] = Field(default_factory=list)


class Workout(BaseModel):
    """A finished session together with its ordered exercises and sets."""

    id: str = Field(default_factory=new_id)
    user_id: str
    start_time: datetime.datetime
    end_time: Optional[datetime.datetime] = None
    notes: Optional[str] = None
    xp_earned: int = 0
    exercises: List[Exercise] = Field(default_factory=list)

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware(cls, value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        # naive timestamps are taken as UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value


class Food(BaseModel):
    """Nutrition facts for one serving of a food."""

    id: str = Field(default_factory=new_id)
    name_en: str
    name_ru: Optional[str] = None
    calories: float
    protein: float
    carbs: float
    fats: float
    serving_size: float = 100.0
    serving_unit: str = "g"
    source: FoodSource = FoodSource.LOCAL
    usda_fdc_id: Optional[str] = None
    is_custom: bool = False


class NutritionLog(BaseModel):
    """A logged portion. Totals are already multiplied by ``servings``."""

    id: str
    user_id: str
    food_id: str
    food_name: str
    meal_type: MealType
    servings: float
    calories: float
    protein: float
    carbs: float
    fats: float
    logged_at: str
    date: str


class WaterLog(BaseModel):
    id: str
    user_id: str
    amount: float
    logged_at: str
    date: str


class NutritionGoals(BaseModel):
    user_id: str
    daily_calories: float = 2000
    protein_goal: float = 150
    carbs_goal: float = 250
    fats_goal: float = 65
    water_goal: float = 2000


class DailyNutritionSummary(BaseModel):
    """Totals for one date bucket paired with the user's goals.

    The value is a snapshot; it does not follow later writes.
    """

    date: str
    total_calories: int = 0
    total_protein: int = 0
    total_carbs: int = 0
    total_fats: int = 0
    total_water: int = 0
    goal_calories: float = 2000
    goal_protein: float = 150
    goal_carbs: float = 250
    goal_fats: float = 65
    goal_water: float = 2000
    logs: List[NutritionLog] = Field(default_factory=list)


class SavedMealItem(BaseModel):
    food_id: str
    food_name: str
    servings: float = 1.0


class SavedMeal(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    name: str
    foods: List[SavedMealItem] = Field(default_factory=list)
    total_calories: float = 0.0
    total_protein: float = 0.0
    total_carbs: float = 0.0
    total_fats: float = 0.0
    created_at: Optional[str] = None


class LevelUp(BaseModel):
    leveled_up: bool
    old_level: int
    new_level: int


MealLogs = Dict[str, List[NutritionLog]]
