import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.api.deps import get_db, require_capability
from eventhub.common.enums import Capability
from eventhub.common.identity import Caller
from eventhub.core import accounts

router = APIRouter(prefix="/users", tags=["Users"])


# ---------- Schemas ----------


class RegisterUserRequest(BaseModel):
    email: EmailStr
    full_name: str
    phone: str | None = None
    profile_image_url: str | None = None


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    phone: str | None
    profile_image_url: str | None
    is_active: bool

    model_config = {"from_attributes": True}


# ---------- Endpoints ----------


@router.post("", response_model=UserResponse, status_code=201)
async def register_user(
    body: RegisterUserRequest,
    caller: Caller = Depends(require_capability(Capability.ACT_AS_USER)),
    db: AsyncSession = Depends(get_db),
):
    user = await accounts.register_user(
        db,
        caller,
        email=body.email,
        full_name=body.full_name,
        phone=body.phone,
        profile_image_url=body.profile_image_url,
    )
    await db.refresh(user)
    return user
