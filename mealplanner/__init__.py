"""
Baby Meal Planner - Source Package

A household meal-planning assistant for parents introducing solid
food: a weekly meal plan, a grocery list and a log of the foods the
baby has tried, all persisted locally on the device.

DESIGN PRINCIPLES:
1. Data lives on the device, one user at a time
2. The storage layer is swappable behind an interface
3. Storage faults never reach the UI as exceptions
4. Legacy data is migrated once, on first start
"""

__version__ = "1.0.0"
__author__ = "Baby Meal Planner Team"
