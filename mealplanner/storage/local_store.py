"""
LocalStore - the application's persistence boundary

LocalStore owns the three tables (users, userData, currentUser) and is
the only component allowed to write them. It is constructed explicitly
and handed to every consumer; there is no module-level instance.

INITIALIZATION:
    UNOPENED -> OPENING -> READY      (success)
                OPENING -> FAILED     (engine unavailable)
    READY/FAILED -> CLOSED            (close())

Every public operation first passes the readiness gate (wait_ready()).
Operations issued before open() trigger it, operations issued while
OPENING wait on the same future. When the store is not READY, reads
return an empty list or None and writes return False - nothing raises.

ERROR CONTRACT:
- Table-level operations (add_user, get_user_data, ...) raise
  StorageError subclasses on engine faults. DuplicateKeyError signals a
  username that is already registered.
- Derived operations (save_week_plan, get_food_tracking, ...) never
  raise: faults are logged and mapped to False / None.
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from mealplanner.config import StorageSettings
from mealplanner.logging_setup import get_logger
from mealplanner.models.user import CurrentUser, User, UserData
from mealplanner.storage.interface import (
    EngineUnavailableError,
    StorageEngine,
    TransactionError,
)
from mealplanner.storage.schema import (
    CURRENT_USER,
    CURRENT_USER_KEY,
    USER_DATA,
    USERS,
)
from mealplanner.storage.sqlite_engine import SQLiteEngine


logger = get_logger(__name__)


WEEK_PLAN_FIELD = "weekPlan"
GROCERY_LIST_FIELD = "groceryList"
FOOD_TRACKING_FIELD = "foodTracking"
SETTINGS_FIELD = "settings"


class StoreState(str, Enum):
    """Lifecycle of the readiness gate."""
    UNOPENED = "unopened"
    OPENING = "opening"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


def to_json_value(value: Any) -> Any:
    """Payloads may be pydantic models; the store persists plain JSON."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return value


class LocalStore:
    """
    Versioned, schema-managed key-value persistence with async open.

    Read-modify-write updates of a UserData row are serialised per
    username, so concurrent saves of different fields of the same row
    both persist. A field written from a stale snapshot still follows
    last-write-wins.
    """

    def __init__(self, engine: StorageEngine):
        self._engine = engine
        self._state = StoreState.UNOPENED
        self._open_task: Optional[asyncio.Task] = None
        # username -> (lock, number of holders and waiters)
        self._row_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "LocalStore":
        """Build a store on the SQLite engine described by settings."""
        engine = SQLiteEngine(
            settings.database_path,
            timeout=settings.connect_timeout_seconds,
            open_attempts=settings.open_retry_attempts,
        )
        return cls(engine)

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def engine(self) -> StorageEngine:
        return self._engine

    # =========================================================================
    # READINESS GATE
    # =========================================================================

    def begin_open(self) -> asyncio.Task:
        """
        Start opening without waiting for the outcome.

        Idempotent: every call returns the same task, which resolves to
        True (READY) or False (FAILED). Must be called from a running
        event loop.
        """
        if self._open_task is None:
            self._state = StoreState.OPENING
            self._open_task = asyncio.ensure_future(self._open_engine())
        return self._open_task

    async def _open_engine(self) -> bool:
        try:
            await self._engine.open()
        except EngineUnavailableError as e:
            logger.error("store_open_failed", error=str(e))
            self._state = StoreState.FAILED
            return False
        except Exception as e:
            logger.error("store_open_failed", error=str(e), exc_info=True)
            self._state = StoreState.FAILED
            return False

        if self._state is StoreState.OPENING:
            self._state = StoreState.READY
            logger.info("store_opened")
            return True
        # close() ran while the engine was opening
        await self._engine.close()
        return False

    async def open(self) -> bool:
        """Open the store. Returns True when READY, False when FAILED."""
        return await self.wait_ready()

    async def wait_ready(self) -> bool:
        """
        The readiness gate shared by every operation.

        Returns:
            True if the store is READY, False otherwise
        """
        if self._state is StoreState.READY:
            return True
        if self._state in (StoreState.FAILED, StoreState.CLOSED):
            return False
        await asyncio.shield(self.begin_open())
        return self._state is StoreState.READY

    async def close(self) -> None:
        """Release the engine. Every later operation is a no-op."""
        previous = self._state
        self._state = StoreState.CLOSED
        if previous is StoreState.READY:
            await self._engine.close()
            logger.info("store_closed")

    # =========================================================================
    # USERS
    # =========================================================================

    async def get_users(self) -> list[User]:
        """
        All registered users, in engine order.

        Records that no longer validate are skipped with a warning.
        """
        if not await self.wait_ready():
            return []

        users = []
        for record in await self._engine.get_all(USERS):
            try:
                users.append(User.model_validate(record))
            except ValidationError as e:
                logger.warning(
                    "user_record_invalid",
                    username=record.get("username"),
                    error=str(e),
                )
        return users

    async def add_user(self, user: Union[User, Mapping[str, Any]]) -> bool:
        """
        Register a new user (insert, never overwrite).

        Raises:
            DuplicateKeyError: If the username already exists
            ValidationError: If the record is not a valid user
            TransactionError: On engine fault
        """
        if not await self.wait_ready():
            return False

        record = User.model_validate(user).model_dump(mode="json")
        return await self._engine.add(USERS, record)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        """Look up a user by exact (case-sensitive) username."""
        if not await self.wait_ready():
            return None

        record = await self._engine.get(USERS, username)
        if record is None:
            return None
        try:
            return User.model_validate(record)
        except ValidationError as e:
            raise TransactionError(f"Corrupt user record {username!r}: {e}") from e

    # =========================================================================
    # USER DATA
    # =========================================================================

    async def get_user_data(self, username: str) -> Optional[dict[str, Any]]:
        """
        The raw UserData document of a user.

        Returns an empty shell ({"username": ...}) when the user has no
        row yet, and None only when the store is not available.
        """
        if not await self.wait_ready():
            return None

        record = await self._engine.get(USER_DATA, username)
        return record if record is not None else {"username": username}

    async def save_user_data(
        self,
        username: str,
        data: Union[UserData, Mapping[str, Any]],
    ) -> bool:
        """
        Upsert the whole UserData document of a user.

        The document's key is always forced to `username`.
        """
        if not await self.wait_ready():
            return False

        if isinstance(data, UserData):
            document = data.to_document()
        else:
            document = {key: to_json_value(value) for key, value in data.items()}
        document["username"] = username
        return await self._engine.put(USER_DATA, document)

    # =========================================================================
    # CURRENT USER
    # =========================================================================

    async def get_current_user(self) -> Optional[CurrentUser]:
        """The logged-in user, or None when logged out."""
        if not await self.wait_ready():
            return None

        record = await self._engine.get(CURRENT_USER, CURRENT_USER_KEY)
        user = record.get("user") if record else None
        if not user:
            return None
        try:
            return CurrentUser.model_validate(user)
        except ValidationError as e:
            raise TransactionError(f"Corrupt current user record: {e}") from e

    async def set_current_user(
        self,
        user: Union[CurrentUser, User, Mapping[str, Any], None],
    ) -> bool:
        """Overwrite the logged-in marker. None means logged out."""
        if not await self.wait_ready():
            return False

        if isinstance(user, User):
            user = user.to_current_user()
        payload = (
            CurrentUser.model_validate(user).model_dump(mode="json")
            if user is not None
            else None
        )
        return await self._engine.put(
            CURRENT_USER,
            {"id": CURRENT_USER_KEY, "user": payload},
        )

    async def clear_current_user(self) -> bool:
        """Remove the currentUser row altogether."""
        if not await self.wait_ready():
            return False
        return await self._engine.delete(CURRENT_USER, CURRENT_USER_KEY)

    # =========================================================================
    # DERIVED PER-FIELD OPERATIONS (never raise)
    # =========================================================================

    @asynccontextmanager
    async def _row_lock(self, username: str) -> AsyncIterator[None]:
        """Serialise read-modify-write of one UserData row."""
        lock, users = self._row_locks.get(username, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._row_locks[username] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._row_locks[username]
            if users == 1:
                del self._row_locks[username]
            else:
                self._row_locks[username] = (lock, users - 1)

    async def _save_field(self, username: str, field: str, value: Any) -> bool:
        try:
            async with self._row_lock(username):
                current = await self.get_user_data(username)
                if current is None:
                    return False
                merged = {**current, field: to_json_value(value)}
                return await self.save_user_data(username, merged)
        except Exception as e:
            logger.error(
                "user_data_save_failed",
                username=username,
                field=field,
                error=str(e),
            )
            return False

    async def _get_field(self, username: str, field: str) -> Optional[Any]:
        try:
            data = await self.get_user_data(username)
        except Exception as e:
            logger.error(
                "user_data_load_failed",
                username=username,
                field=field,
                error=str(e),
            )
            return None
        if data is None:
            return None
        return data.get(field)

    async def save_week_plan(self, username: str, week_plan: Any) -> bool:
        return await self._save_field(username, WEEK_PLAN_FIELD, week_plan)

    async def get_week_plan(self, username: str) -> Optional[Any]:
        return await self._get_field(username, WEEK_PLAN_FIELD)

    async def save_grocery_list(self, username: str, grocery_list: Any) -> bool:
        return await self._save_field(username, GROCERY_LIST_FIELD, grocery_list)

    async def get_grocery_list(self, username: str) -> Optional[Any]:
        return await self._get_field(username, GROCERY_LIST_FIELD)

    async def save_food_tracking(self, username: str, food_tracking: Any) -> bool:
        return await self._save_field(username, FOOD_TRACKING_FIELD, food_tracking)

    async def get_food_tracking(self, username: str) -> Optional[Any]:
        return await self._get_field(username, FOOD_TRACKING_FIELD)

    async def save_settings(self, username: str, settings: Any) -> bool:
        return await self._save_field(username, SETTINGS_FIELD, settings)

    async def get_settings(self, username: str) -> Optional[Any]:
        return await self._get_field(username, SETTINGS_FIELD)
