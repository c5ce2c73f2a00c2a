"""
Planner Session

Loads a logged-in user's planner data with defaults, and saves it back
through a debounced auto-save.

DESIGN DECISION: Auto-save is a caller-side policy. Rapid edits are
batched into one save after a quiet period (2 seconds by default). The
store's per-field saves are read-modify-write, so fewer, batched saves
also mean fewer chances for a stale snapshot to overwrite a newer one.
"""

import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError

from mealplanner.logging_setup import get_logger
from mealplanner.models.planner import (
    FoodTracking,
    GroceryList,
    WeekPlan,
    empty_week_plan,
    initial_food_tracking,
)
from mealplanner.storage import LocalStore


logger = get_logger(__name__)

T = TypeVar("T")


class PlannerData(BaseModel):
    """Everything the planner screen shows for one user."""

    week_plan: WeekPlan = Field(default_factory=empty_week_plan)
    grocery_list: GroceryList = Field(default_factory=lambda: GroceryList([]))
    food_tracking: FoodTracking = Field(default_factory=initial_food_tracking)


class PlannerSession:
    """Per-user planner data access on top of LocalStore."""

    def __init__(self, store: LocalStore, username: str):
        self._store = store
        self._username = username

    @property
    def username(self) -> str:
        return self._username

    async def _load_field(
        self,
        name: str,
        value: Optional[Any],
        model: type,
        default: Callable[[], Any],
        save: Callable[[str, Any], Awaitable[bool]],
    ) -> Any:
        if value is not None:
            try:
                return model.model_validate(value)
            except ValidationError as e:
                logger.warning(
                    "planner_field_invalid",
                    username=self._username,
                    field=name,
                    error=str(e),
                )
                return default()
        fallback = default()
        await save(self._username, fallback)
        return fallback

    async def load(self) -> PlannerData:
        """
        Load the three payloads.

        A missing payload is replaced by its default, which is persisted
        right away. An unreadable payload is replaced in memory only; the
        next save overwrites it.
        """
        store = self._store
        week_plan = await self._load_field(
            "week_plan",
            await store.get_week_plan(self._username),
            WeekPlan,
            empty_week_plan,
            store.save_week_plan,
        )
        grocery_list = await self._load_field(
            "grocery_list",
            await store.get_grocery_list(self._username),
            GroceryList,
            lambda: GroceryList([]),
            store.save_grocery_list,
        )
        food_tracking = await self._load_field(
            "food_tracking",
            await store.get_food_tracking(self._username),
            FoodTracking,
            initial_food_tracking,
            store.save_food_tracking,
        )
        return PlannerData(
            week_plan=week_plan,
            grocery_list=grocery_list,
            food_tracking=food_tracking,
        )

    async def save_all(self, data: PlannerData) -> bool:
        """Save the three payloads concurrently. True only if all persisted."""
        results = await asyncio.gather(
            self._store.save_week_plan(self._username, data.week_plan),
            self._store.save_grocery_list(self._username, data.grocery_list),
            self._store.save_food_tracking(self._username, data.food_tracking),
        )
        ok = all(results)
        if not ok:
            logger.warning("planner_save_incomplete", username=self._username, results=results)
        return ok


class DebouncedSaver(Generic[T]):
    """
    Runs `callback` with the latest scheduled value once no new value
    has arrived for `delay` seconds.
    """

    def __init__(self, callback: Callable[[T], Awaitable[Any]], delay: float = 2.0):
        self._callback = callback
        self._delay = max(0.0, float(delay))
        self._pending: Optional[T] = None
        self._has_pending = False
        self._timer: Optional[asyncio.Task] = None
        # Held while the callback runs; saves never overlap
        self._saving = asyncio.Lock()

    @property
    def pending(self) -> bool:
        return self._has_pending

    def schedule(self, value: T) -> None:
        """Remember `value` and restart the quiet-period timer."""
        self._pending = value
        self._has_pending = True
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.ensure_future(self._fire_later())

    async def _fire_later(self) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        await self._run()

    async def _run(self) -> Any:
        async with self._saving:
            if not self._has_pending:
                return None
            value = self._pending
            self._pending = None
            self._has_pending = False
            try:
                return await self._callback(value)
            except Exception as e:
                logger.error("autosave_failed", error=str(e))
                return None

    async def flush(self) -> Any:
        """
        Run a pending save now.

        Waits for a save that is already running, so the store may be
        closed once this returns.

        Returns:
            The callback's result, or None when nothing was pending
        """
        self.cancel_timer()
        return await self._run()

    def cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def cancel(self) -> None:
        """Drop a pending save."""
        self.cancel_timer()
        self._pending = None
        self._has_pending = False


def autosaver(session: PlannerSession, delay: float = 2.0) -> DebouncedSaver[PlannerData]:
    """Debounced save_all for a session."""
    return DebouncedSaver(session.save_all, delay=delay)
