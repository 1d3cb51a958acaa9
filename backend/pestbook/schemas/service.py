"""
Pydantic schemas for the service catalog.
"""

import uuid
from typing import Optional

from pydantic import BaseModel


class ServiceResponse(BaseModel):
    public_id: uuid.UUID
    title: str
    description: str
    duration_minutes: Optional[int]
    base_price_cents: Optional[int]
    is_active: bool = True

    model_config = {"from_attributes": True}


class ServiceListResponse(BaseModel):
    services: list[ServiceResponse]
    cached: bool = False


class ServiceActivationUpdate(BaseModel):
    is_active: bool
