"""
Data Models Package

Pydantic models for the persisted user records and for the typed
planner payloads (week plan, grocery list, food tracking).
"""

from mealplanner.models.user import (
    CurrentUser,
    Gender,
    User,
    UserData,
)
from mealplanner.models.planner import (
    DayPlan,
    FoodCategory,
    FoodItem,
    FoodTag,
    FoodTracking,
    GroceryItem,
    GroceryList,
    MealType,
    WeekPlan,
    empty_week_plan,
    initial_food_tracking,
)

__all__ = [
    # User records
    "CurrentUser",
    "Gender",
    "User",
    "UserData",
    # Planner payloads
    "DayPlan",
    "FoodCategory",
    "FoodItem",
    "FoodTag",
    "FoodTracking",
    "GroceryItem",
    "GroceryList",
    "MealType",
    "WeekPlan",
    "empty_week_plan",
    "initial_food_tracking",
]
