from typing import Optional

from pydantic import Field

from app.schemas.my_base_model import CustomBaseModel


class ProfileUpdateRequest(CustomBaseModel):
    """Profile fields a user may change, all optional"""

    display_name: Optional[str] = Field(default=None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: Optional[str] = Field(default=None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
