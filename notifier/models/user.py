# notifier/models/user.py
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_RE.match(email) is not None


class UserPreferences(BaseModel):
    promotions: Optional[bool] = None
    orderUpdates: Optional[bool] = None
    recommendations: Optional[bool] = None


class DirectoryUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")
    email: Optional[str] = None
    name: str = ""
    preferences: UserPreferences = Field(default_factory=UserPreferences)

    @field_validator("preferences", mode="before")
    @classmethod
    def _null_preferences(cls, value):
        return UserPreferences() if value is None else value

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value):
        return "" if value is None else value

    @property
    def accepts_promotions(self) -> bool:
        # only an explicit opt-out excludes the user
        return self.preferences.promotions is not False
