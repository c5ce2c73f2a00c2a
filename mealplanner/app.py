"""
Application Lifecycle

Wires the components together and defines startup and shutdown:

    start:  open LocalStore -> legacy migration gate -> restore current user
    stop:   close LocalStore

The store is created here and passed by reference to every consumer.
"""

from typing import Optional

from mealplanner.auth import AuthService
from mealplanner.config import StorageSettings, get_settings
from mealplanner.logging_setup import configure_logging, get_logger
from mealplanner.models.user import CurrentUser
from mealplanner.session import DebouncedSaver, PlannerData, PlannerSession
from mealplanner.session import autosaver as make_autosaver
from mealplanner.storage import (
    LegacyFlatStore,
    LegacyStorageError,
    LocalStore,
    run_startup_migration,
)


logger = get_logger(__name__)


class MealPlannerApp:
    """Owns the store, the legacy storage and the auth service."""

    def __init__(
        self,
        store: LocalStore,
        legacy: LegacyFlatStore,
        settings: Optional[StorageSettings] = None,
    ):
        self._settings = settings or StorageSettings()
        self.store = store
        self.legacy = legacy
        self.auth = AuthService(store)
        self.migration_result: Optional[bool] = None

    @classmethod
    def from_settings(cls, settings: Optional[StorageSettings] = None) -> "MealPlannerApp":
        settings = settings or get_settings().storage
        return cls(
            store=LocalStore.from_settings(settings),
            legacy=LegacyFlatStore(settings.legacy_path),
            settings=settings,
        )

    async def start(self) -> Optional[CurrentUser]:
        """
        Open storage, migrate legacy data once, restore the login.

        Returns:
            The logged-in user, or None (show the login form)
        """
        ready = await self.store.open()
        if not ready:
            logger.warning("running_without_persistence")

        try:
            self.migration_result = await run_startup_migration(
                self.store,
                self.legacy,
                retry_failed=self._settings.retry_failed_migration,
            )
        except LegacyStorageError as e:
            logger.error("migration_gate_failed", error=str(e))
            self.migration_result = False

        return await self.auth.initialize()

    async def stop(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> "MealPlannerApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def session(self) -> Optional[PlannerSession]:
        """Planner session of the logged-in user, None when logged out."""
        user = self.auth.user
        return PlannerSession(self.store, user.username) if user else None

    def autosaver(self, session: PlannerSession) -> DebouncedSaver[PlannerData]:
        """Debounced save_all using the configured quiet period."""
        return make_autosaver(session, delay=self._settings.autosave_delay_seconds)


def create_app(settings: Optional[StorageSettings] = None) -> MealPlannerApp:
    """
    Factory function to create the application.

    Configures logging from the environment, then builds the app on the
    configured storage.
    """
    log_settings = get_settings().logging
    configure_logging(log_settings.level, log_settings.json_output)
    return MealPlannerApp.from_settings(settings)
