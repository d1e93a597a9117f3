"""
Pydantic schemas for user management.

hashed_password is never included in any response schema.
"""

from pydantic import Field, field_validator

from app.schemas.common import ApiModel


class UserResponse(ApiModel):
    """Public representation of a User."""
    id: int
    username: str
    enabled: bool
    roles: list[str]

    @field_validator("roles", mode="before")
    @classmethod
    def role_names(cls, value):
        # ORM instances carry Role objects; responses show the names, sorted
        return sorted(getattr(role, "role_name", role) for role in value)


class CreateUserRequest(ApiModel):
    """Request body for POST /admin/users."""
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=8, max_length=128)
    enabled: bool = True


class UpdateRolesRequest(ApiModel):
    """Request body for PUT /admin/users/{username}/roles."""
    roles: list[str] = Field(min_length=1)
