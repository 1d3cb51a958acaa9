"""
Pydantic schemas for signup, login and profile responses.
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, min_length=7, max_length=30)
    account_type: Optional[Literal["residential", "business"]] = None
    address: Optional[str] = Field(None, min_length=5, max_length=500)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class UserResponse(BaseModel):
    public_id: uuid.UUID
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    account_type: Optional[str]
    address: Optional[str]
    roles: list[str] = Field(validation_alias=AliasChoices("role_names", "roles"))
    crm_tag: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class SignupResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    promoted_from_lead: bool = False
