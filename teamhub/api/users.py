# =============================================================================
# Users API Routes
# =============================================================================
#
#   POST   /users             - Create user          (manageUsers)
#   GET    /users             - List users           (getUsers)
#   GET    /users/{user_id}   - Get user             (getUsers, or self)
#   PATCH  /users/{user_id}   - Update user          (manageUsers, or self)
#   DELETE /users/{user_id}   - Delete user          (manageUsers, or self)
#
# =============================================================================

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, EmailStr, field_validator, model_validator

from teamhub.api.dependencies import AppServices, get_services
from teamhub.auth.capabilities import UserRight
from teamhub.auth.context import AuthContext
from teamhub.auth.policies import require
from teamhub.core.models import UserRole
from teamhub.core.utils import validate_password

router = APIRouter(prefix="/users", tags=["users"])


class CreateUserRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: UserRole = UserRole.USER

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class UpdateUserRequest(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    password: str | None = None

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str | None) -> str | None:
        return validate_password(v) if v is not None else v

    @model_validator(mode="after")
    def at_least_one_field(self):
        if self.name is None and self.email is None and self.password is None:
            raise ValueError("at least one field must be given")
        return self


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    data: CreateUserRequest,
    ctx: AuthContext = Depends(require(UserRight.MANAGE_USERS)),
    services: AppServices = Depends(get_services),
):
    user = await services.user_service.create_user(
        name=data.name, email=data.email, password=data.password, role=data.role
    )
    return user.to_public()


@router.get("")
async def list_users(
    name: str | None = None,
    role: UserRole | None = None,
    sort_by: str | None = None,
    limit: int = 10,
    page: int = 1,
    ctx: AuthContext = Depends(require(UserRight.GET_USERS)),
    services: AppServices = Depends(get_services),
):
    result = await services.user_service.query_users(
        name=name, role=role, sort_by=sort_by, limit=limit, page=page
    )
    return {**result, "results": [u.to_public() for u in result["results"]]}


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    ctx: AuthContext = Depends(require(UserRight.GET_USERS)),
    services: AppServices = Depends(get_services),
):
    user = await services.user_service.get_user(user_id)
    return user.to_public()


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    data: UpdateUserRequest,
    ctx: AuthContext = Depends(require(UserRight.MANAGE_USERS)),
    services: AppServices = Depends(get_services),
):
    result = await services.user_service.update_user(
        user_id, name=data.name, email=data.email, password=data.password
    )
    return {"user": result.value.to_public(), "warnings": result.warnings}


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    ctx: AuthContext = Depends(require(UserRight.MANAGE_USERS)),
    services: AppServices = Depends(get_services),
):
    await services.user_service.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
