from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthUser(BaseModel):
    """
    Caller identity decoded from an internal bearer token.
    """

    user_id: str = Field(..., alias="sub")
    email: Optional[str] = None
    role: str = "authenticated"

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "service_role")
