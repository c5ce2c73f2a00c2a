"""
Planner Payload Models

Typed shapes of the three per-user payloads: the week plan, the grocery
list and the food tracking log. The store persists them as plain JSON;
these models are how the session layer reads and builds them.

Day indexes are strings ("0" = Monday ... "6" = Sunday) so that a plan
survives a JSON round-trip unchanged.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel


# =============================================================================
# WEEK PLAN
# =============================================================================

class MealType(str, Enum):
    """The five meals of a day."""
    BREAKFAST = "breakfast"
    MORNING_SNACK = "morningSnack"
    LUNCH = "lunch"
    AFTERNOON_SNACK = "afternoonSnack"
    DINNER = "dinner"


DAYS_PER_WEEK = 7


class DayPlan(BaseModel):
    """What is planned for each meal of one day (empty string = nothing)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    breakfast: str = ""
    morning_snack: str = Field(default="", alias="morningSnack")
    lunch: str = ""
    afternoon_snack: str = Field(default="", alias="afternoonSnack")
    dinner: str = ""

    def meal(self, meal_type: MealType) -> str:
        return self.model_dump(by_alias=True)[meal_type.value]

    def with_meal(self, meal_type: MealType, value: str) -> "DayPlan":
        data = self.model_dump(by_alias=True)
        data[meal_type.value] = value
        return DayPlan.model_validate(data)


class WeekPlan(RootModel[dict[str, DayPlan]]):
    """Day index ("0".."6") -> DayPlan."""

    def day(self, index: int) -> DayPlan:
        return self.root.get(str(index), DayPlan())

    def with_meal(self, index: int, meal_type: MealType, value: str) -> "WeekPlan":
        """Copy of this plan with one meal replaced."""
        if not 0 <= index < DAYS_PER_WEEK:
            raise ValueError(f"Day index out of range: {index}")
        days = dict(self.root)
        days[str(index)] = self.day(index).with_meal(meal_type, value)
        return WeekPlan(days)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def empty_week_plan() -> WeekPlan:
    """Seven days with every meal empty."""
    return WeekPlan({str(i): DayPlan() for i in range(DAYS_PER_WEEK)})


# =============================================================================
# GROCERY LIST
# =============================================================================

class GroceryItem(BaseModel):
    """One line of the grocery list."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    purchased: bool = False


class GroceryList(RootModel[list[GroceryItem]]):
    """Ordered grocery list."""

    def to_document(self) -> list:
        return self.model_dump(mode="json")


# =============================================================================
# FOOD TRACKING
# =============================================================================

class FoodTag(str, Enum):
    """Nutrition tags shown as badges next to a food."""
    ALLERGEN = "alergeno"
    VITAMIN_C = "vitaminaC"
    IRON = "hierro"


class FoodCategory(str, Enum):
    """Food groups of the tracking log."""
    PROTEINS = "proteinas"
    VEGETABLES = "verduras"
    FRUITS = "frutas"
    CEREALS = "cereales"
    FATS = "grasas"


class FoodItem(BaseModel):
    """A food and how many times the baby has tried it."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    count: int = Field(default=0, ge=0)
    custom: Optional[bool] = None
    tags: Optional[list[FoodTag]] = None


class FoodTracking(RootModel[dict[FoodCategory, list[FoodItem]]]):
    """Food category -> foods in that category."""

    def foods(self, category: FoodCategory) -> list[FoodItem]:
        return list(self.root.get(category, []))

    def with_food(self, category: FoodCategory, food: FoodItem) -> "FoodTracking":
        """Copy with `food` added, or replaced when its id already exists."""
        foods = [item for item in self.foods(category) if item.id != food.id]
        foods.append(food)
        data = dict(self.root)
        data[category] = foods
        return FoodTracking(data)

    def increment(self, category: FoodCategory, food_id: str) -> "FoodTracking":
        """Copy with the tried-count of one food bumped by one."""
        data = dict(self.root)
        data[category] = [
            item.model_copy(update={"count": item.count + 1}) if item.id == food_id else item
            for item in self.foods(category)
        ]
        return FoodTracking(data)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


_DEFAULT_FOODS: dict[FoodCategory, list[tuple[str, str, tuple[FoodTag, ...]]]] = {
    FoodCategory.PROTEINS: [
        ("p1", "Pollo", (FoodTag.IRON,)),
        ("p2", "Huevo", (FoodTag.ALLERGEN, FoodTag.IRON)),
        ("p3", "Pescado", (FoodTag.ALLERGEN, FoodTag.IRON)),
        ("p4", "Legumbres", (FoodTag.IRON,)),
        ("p5", "Carne de res", (FoodTag.IRON,)),
    ],
    FoodCategory.VEGETABLES: [
        ("v1", "Zanahoria", (FoodTag.VITAMIN_C,)),
        ("v2", "Calabaza", (FoodTag.VITAMIN_C,)),
        ("v3", "Papa", ()),
        ("v4", "Espinaca", (FoodTag.IRON, FoodTag.VITAMIN_C)),
        ("v5", "Brócoli", (FoodTag.VITAMIN_C, FoodTag.IRON)),
    ],
    FoodCategory.FRUITS: [
        ("f1", "Manzana", (FoodTag.VITAMIN_C,)),
        ("f2", "Pera", ()),
        ("f3", "Banano", ()),
        ("f4", "Papaya", (FoodTag.VITAMIN_C,)),
        ("f5", "Mango", (FoodTag.VITAMIN_C,)),
        ("f6", "Guayaba", (FoodTag.VITAMIN_C,)),
        ("f7", "Durazno", (FoodTag.VITAMIN_C,)),
        ("f8", "Ciruela", ()),
        ("f9", "Fresa", (FoodTag.VITAMIN_C, FoodTag.ALLERGEN)),
        ("f10", "Kiwi", (FoodTag.VITAMIN_C, FoodTag.ALLERGEN)),
    ],
    FoodCategory.CEREALS: [
        ("c1", "Arroz", ()),
        ("c2", "Avena", (FoodTag.IRON,)),
        ("c3", "Quinoa", (FoodTag.IRON,)),
        ("c4", "Maíz", ()),
        ("c5", "Trigo", (FoodTag.ALLERGEN,)),
    ],
    FoodCategory.FATS: [
        ("g1", "Aguacate", ()),
        ("g2", "Aceite de oliva", ()),
        ("g3", "Aceite de coco", ()),
        ("g4", "Semillas de chía", ()),
        ("g5", "Mantequilla natural", ()),
        ("g6", "Frutos secos", (FoodTag.ALLERGEN,)),
    ],
}


def initial_food_tracking() -> FoodTracking:
    """The default food catalogue, every count at zero."""
    return FoodTracking({
        category: [
            FoodItem(id=food_id, name=name, tags=list(tags) if tags else None)
            for food_id, name, tags in foods
        ]
        for category, foods in _DEFAULT_FOODS.items()
    })
