"""
Job owner identity.

Every job is attributable to a user; system jobs use ``JobOwner.system()``.
No authentication happens here - the trigger layer supplies the identity.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


SYSTEM_USER_ID = "system"


class JobOwner(BaseModel):
    """User that submitted a job."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, description="Stable user identifier")
    email: Optional[str] = Field(default=None, description="Contact address shown in instance tags")

    @classmethod
    def system(cls) -> "JobOwner":
        return cls(user_id=SYSTEM_USER_ID, email=None)

    @property
    def display_name(self) -> str:
        return self.email or self.user_id
