"""
Authentication Flow

Login, signup and logout on top of LocalStore. Every call returns an
AuthResult and never raises; the UI shows `result.message` when
`result.ok` is False.

NOTE: passwords are stored and compared in plaintext. This app keeps a
household's data on one device and makes no security claims.
"""

import re
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel

from mealplanner.logging_setup import get_logger
from mealplanner.models.user import CurrentUser, Gender, User
from mealplanner.storage import DuplicateKeyError, LocalStore


logger = get_logger(__name__)


USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
MIN_PASSWORD_LENGTH = 6


class AuthErrorCode(str, Enum):
    """Why an auth call failed."""
    MISSING_CREDENTIALS = "missing_credentials"
    USER_NOT_FOUND = "user_not_found"
    WRONG_PASSWORD = "wrong_password"
    INVALID_USERNAME = "invalid_username"
    WEAK_PASSWORD = "weak_password"
    PASSWORD_TOO_SHORT = "password_too_short"
    USERNAME_TAKEN = "username_taken"
    STORAGE_ERROR = "storage_error"


ERROR_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.MISSING_CREDENTIALS: "Please enter the baby's name and a password",
    AuthErrorCode.USER_NOT_FOUND: "User not found",
    AuthErrorCode.WRONG_PASSWORD: "Incorrect password",
    AuthErrorCode.INVALID_USERNAME: "The name may only contain letters, numbers and underscores",
    AuthErrorCode.WEAK_PASSWORD: "The password must contain letters and numbers",
    AuthErrorCode.PASSWORD_TOO_SHORT: (
        f"The password must be at least {MIN_PASSWORD_LENGTH} characters long"
    ),
    AuthErrorCode.USERNAME_TAKEN: "This name is already registered",
    AuthErrorCode.STORAGE_ERROR: "Something went wrong, please try again",
}


class AuthResult(BaseModel):
    """Outcome of an auth call."""

    ok: bool
    user: Optional[CurrentUser] = None
    error: Optional[AuthErrorCode] = None

    @property
    def message(self) -> Optional[str]:
        return ERROR_MESSAGES[self.error] if self.error else None

    @classmethod
    def success(cls, user: Optional[CurrentUser] = None) -> "AuthResult":
        return cls(ok=True, user=user)

    @classmethod
    def failure(cls, error: AuthErrorCode) -> "AuthResult":
        return cls(ok=False, error=error)


def validate_signup(username: str, password: str) -> Optional[AuthErrorCode]:
    """Signup rules, checked in order. None when everything is valid."""
    if not username or not password:
        return AuthErrorCode.MISSING_CREDENTIALS
    if not USERNAME_PATTERN.match(username):
        return AuthErrorCode.INVALID_USERNAME
    has_letters = re.search(r"[a-zA-Z]", password) is not None
    has_digits = re.search(r"[0-9]", password) is not None
    if not has_letters or not has_digits:
        return AuthErrorCode.WEAK_PASSWORD
    if len(password) < MIN_PASSWORD_LENGTH:
        return AuthErrorCode.PASSWORD_TOO_SHORT
    return None


class AuthService:
    """Login state of the device, persisted in the currentUser table."""

    def __init__(self, store: LocalStore):
        self._store = store
        self._user: Optional[CurrentUser] = None

    @property
    def user(self) -> Optional[CurrentUser]:
        return self._user

    async def initialize(self) -> Optional[CurrentUser]:
        """Restore the logged-in user from the store."""
        try:
            self._user = await self._store.get_current_user()
        except Exception as e:
            logger.error("auth_initialize_failed", error=str(e))
            self._user = None
        return self._user

    async def login(self, username: str, password: str) -> AuthResult:
        if not username or not password:
            return AuthResult.failure(AuthErrorCode.MISSING_CREDENTIALS)

        try:
            found = await self._store.get_user_by_username(username)
            if found is None:
                return AuthResult.failure(AuthErrorCode.USER_NOT_FOUND)
            if found.password != password:
                return AuthResult.failure(AuthErrorCode.WRONG_PASSWORD)

            current = found.to_current_user()
            self._user = current
            if not await self._store.set_current_user(current):
                logger.warning("current_user_not_persisted", username=username)
            return AuthResult.success(current)
        except Exception as e:
            logger.error("login_failed", username=username, error=str(e))
            return AuthResult.failure(AuthErrorCode.STORAGE_ERROR)

    async def signup(
        self,
        username: str,
        password: str,
        gender: Union[Gender, str],
    ) -> AuthResult:
        error = validate_signup(username, password)
        if error is not None:
            return AuthResult.failure(error)

        try:
            if await self._store.get_user_by_username(username) is not None:
                return AuthResult.failure(AuthErrorCode.USERNAME_TAKEN)

            user = User(username=username, password=password, gender=gender)
            if not await self._store.add_user(user):
                return AuthResult.failure(AuthErrorCode.STORAGE_ERROR)

            current = user.to_current_user()
            self._user = current
            await self._store.set_current_user(current)
            await self._store.save_user_data(
                username,
                {
                    "username": username,
                    "weekPlan": {},
                    "groceryList": [],
                    "foodTracking": None,
                },
            )
            logger.info("user_registered", username=username)
            return AuthResult.success(current)
        except DuplicateKeyError:
            return AuthResult.failure(AuthErrorCode.USERNAME_TAKEN)
        except Exception as e:
            logger.error("signup_failed", username=username, error=str(e))
            return AuthResult.failure(AuthErrorCode.STORAGE_ERROR)

    async def logout(self) -> AuthResult:
        try:
            await self._store.set_current_user(None)
        except Exception as e:
            logger.error("logout_failed", error=str(e))
            return AuthResult.failure(AuthErrorCode.STORAGE_ERROR)
        self._user = None
        return AuthResult.success()
