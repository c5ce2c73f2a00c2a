"""
User Records

The three persisted record shapes:
- User: one registered account (users table)
- CurrentUser: the logged-in marker (currentUser table)
- UserData: per-user planner payloads (userData table)

Field names on disk are camelCase (weekPlan, groceryList, ...) because
older versions of the app wrote them that way and the legacy migration
copies those documents as they are.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Gender(str, Enum):
    """Baby's gender; also selects the UI colour theme."""
    MALE = "male"
    FEMALE = "female"


class User(BaseModel):
    """
    A registered user.

    NOTE: the password is stored and compared in plaintext. This is a
    known limitation of a single-device app, not a security boundary.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    username: str = Field(
        ...,
        min_length=1,
        description="Unique, case-sensitive username (primary key)"
    )
    password: str = Field(
        ...,
        description="Plaintext password"
    )
    gender: Gender = Field(
        ...,
        description="Baby's gender"
    )

    def to_current_user(self) -> "CurrentUser":
        """Trimmed copy stored as the logged-in marker."""
        return CurrentUser(username=self.username, gender=self.gender)


class CurrentUser(BaseModel):
    """The logged-in user. A de-normalized copy, not a reference."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    username: str = Field(..., min_length=1)
    gender: Gender


class UserData(BaseModel):
    """
    Per-user planner payloads.

    The payload fields are opaque to the store; see models.planner for
    their typed application-level shapes.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    username: str = Field(..., min_length=1)
    week_plan: Optional[Any] = Field(default=None, alias="weekPlan")
    grocery_list: Optional[Any] = Field(default=None, alias="groceryList")
    food_tracking: Optional[Any] = Field(default=None, alias="foodTracking")
    settings: Optional[Any] = None

    def to_document(self) -> dict[str, Any]:
        """Dump to the on-disk document, omitting unset payloads."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)
