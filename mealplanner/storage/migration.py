"""
Legacy Data Migration

Copies data from the legacy flat-key storage into LocalStore, once per
installation.

Steps (in order, inside one try-block):
1. `users`  -> add_user() for every record (insert, not upsert)
2. `user`   -> set_current_user()
3. re-read the current user from the store; if there is one, copy its
   weekPlan_/groceryList_/foodTracking_<username> blobs

The first failing step aborts the rest and the migration reports False.
Nothing already written is rolled back. A duplicate legacy username
fails step 1, so running the migration a second time always reports
False while leaving the first run's data untouched.
"""

import json
from typing import Any, Awaitable, Callable, Optional

from mealplanner.logging_setup import get_logger
from mealplanner.storage.interface import MigrationError
from mealplanner.storage.legacy import (
    LEGACY_CURRENT_USER_KEY,
    LEGACY_USERS_KEY,
    LegacyFlatStore,
    legacy_field_key,
)
from mealplanner.storage.local_store import (
    FOOD_TRACKING_FIELD,
    GROCERY_LIST_FIELD,
    WEEK_PLAN_FIELD,
    LocalStore,
)


logger = get_logger(__name__)


class LegacyMigrator:
    """One-shot best-effort transfer of legacy flat-key data."""

    def __init__(self, store: LocalStore, legacy: LegacyFlatStore):
        self._store = store
        self._legacy = legacy

    def _read_json(self, key: str) -> Optional[Any]:
        raw = self._legacy.get_item(key)
        if not raw:
            return None
        return json.loads(raw)

    async def _step(self, name: str, action: Callable[[], Awaitable[bool]]) -> None:
        try:
            ok = await action()
        except Exception as e:
            raise MigrationError(name, e) from e
        if not ok:
            raise MigrationError(name, RuntimeError("store did not persist the record"))

    async def _migrate_users(self) -> int:
        users = self._read_json(LEGACY_USERS_KEY)
        if users is None:
            return 0
        if not isinstance(users, list):
            raise MigrationError("users", ValueError("legacy users is not a list"))
        for user in users:
            await self._step(
                f"users[{user.get('username') if isinstance(user, dict) else '?'}]",
                lambda user=user: self._store.add_user(user),
            )
        return len(users)

    async def _migrate_current_user(self) -> bool:
        current = self._read_json(LEGACY_CURRENT_USER_KEY)
        if current is None:
            return False
        await self._step("current_user", lambda: self._store.set_current_user(current))
        return True

    async def _migrate_user_data(self) -> list[str]:
        current = await self._store.get_current_user()
        if current is None:
            return []

        username = current.username
        savers = {
            WEEK_PLAN_FIELD: self._store.save_week_plan,
            GROCERY_LIST_FIELD: self._store.save_grocery_list,
            FOOD_TRACKING_FIELD: self._store.save_food_tracking,
        }
        migrated = []
        for field, save in savers.items():
            value = self._read_json(legacy_field_key(field, username))
            if value is None:
                continue
            await self._step(field, lambda save=save, value=value: save(username, value))
            migrated.append(field)
        return migrated

    async def migrate(self) -> bool:
        """
        Run every migration step.

        Returns:
            True if every step succeeded, False on the first failure
        """
        try:
            user_count = await self._migrate_users()
            has_current = await self._migrate_current_user()
            fields = await self._migrate_user_data()
        except Exception as e:
            logger.error(
                "legacy_migration_failed",
                legacy_path=str(self._legacy.path),
                error=str(e),
            )
            return False

        logger.info(
            "legacy_migration_completed",
            users=user_count,
            current_user=has_current,
            fields=fields,
        )
        return True


async def run_startup_migration(
    store: LocalStore,
    legacy: LegacyFlatStore,
    retry_failed: bool = False,
) -> Optional[bool]:
    """
    Migration gate run once at application start.

    Skips when the legacy completion flag is already set. Otherwise runs
    the migration and sets the flag - unconditionally by default, so a
    failed migration is never retried. With retry_failed=True the flag
    is only set after a successful run.

    Returns:
        None when skipped, otherwise the migration outcome
    """
    if legacy.migration_completed():
        return None

    success = await LegacyMigrator(store, legacy).migrate()
    if success or not retry_failed:
        legacy.mark_migration_completed()
    if not success:
        logger.warning(
            "legacy_migration_flag",
            flag_set=not retry_failed,
            will_retry=retry_failed,
        )
    return success
