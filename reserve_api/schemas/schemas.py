"""Pydantic schemas for API request/response serialization.

Response field names follow the camelCase contract the dashboard consumes;
request bodies accept either the camelCase alias or the snake_case name.
"""

import enum
from pydantic import BaseModel, BeforeValidator, Field
from typing import Annotated, Optional, List, Dict, Any
from datetime import datetime


def _enum_value(value):
    return value.value if isinstance(value, enum.Enum) else value


# ORM enum columns serialize as their plain value.
EnumStr = Annotated[str, BeforeValidator(_enum_value)]


# ---- Auth ----
class LoginRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=4)

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None

class RefreshRequest(BaseModel):
    refresh_token: str

class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    email: str = Field(..., min_length=4, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8)
    rank: str = Field(..., min_length=1)
    company: Optional[str] = None
    service_number: Optional[str] = Field(None, alias="serviceNumber")

    class Config:
        populate_by_name = True

class PermissionsOut(BaseModel):
    role: str
    effective_role: str = Field(..., serialization_alias="effectiveRole")
    simulated: bool = False
    permissions: List[str]
    table_version: str = Field(..., serialization_alias="tableVersion")


# ---- User ----
class UserOut(BaseModel):
    id: int
    email: str
    full_name: str = Field(..., serialization_alias="name")
    role: EnumStr
    status: EnumStr
    company: Optional[str] = None
    rank: Optional[str] = None
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")

    class Config:
        from_attributes = True

class UserCreateRequest(BaseModel):
    first_name: str = Field(..., min_length=1, alias="firstName")
    last_name: str = Field(..., min_length=1, alias="lastName")
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=8)
    role: str
    company: Optional[str] = None
    rank: Optional[str] = None

    class Config:
        populate_by_name = True

class UserUpdateRequest(BaseModel):
    role: Optional[str] = None
    status: Optional[str] = None
    company: Optional[str] = None
    rank: Optional[str] = None


# ---- Account requests ----
class AccountRequestOut(BaseModel):
    id: int
    name: str
    email: str
    rank: Optional[str] = None
    company: Optional[str] = None
    status: EnumStr
    submitted_at: datetime = Field(..., serialization_alias="submittedAt")
    decided_at: Optional[datetime] = Field(None, serialization_alias="decidedAt")
    rejection_reason: Optional[str] = Field(None, serialization_alias="rejectionReason")

    class Config:
        from_attributes = True

class AccountDecisionRequest(BaseModel):
    id: int
    status: str
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")

    class Config:
        populate_by_name = True


# ---- Personnel ----
class PersonnelOut(BaseModel):
    id: int
    name: str
    rank: str
    service_number: Optional[str] = Field(None, serialization_alias="serviceNumber")
    email: str
    company: Optional[str] = None
    status: str
    user_id: Optional[int] = Field(None, serialization_alias="userId")
    date_joined: Optional[datetime] = Field(None, serialization_alias="dateJoined")
    updated_at: Optional[datetime] = Field(None, serialization_alias="lastUpdated")

    class Config:
        from_attributes = True

class PersonnelCreate(BaseModel):
    name: str = Field(..., min_length=1)
    rank: str = Field(..., min_length=1)
    email: str = Field(..., min_length=4)
    service_number: Optional[str] = Field(None, alias="serviceNumber")
    company: Optional[str] = None
    status: Optional[str] = None

    class Config:
        populate_by_name = True

class PersonnelUpdate(BaseModel):
    name: Optional[str] = None
    rank: Optional[str] = None
    email: Optional[str] = None
    service_number: Optional[str] = Field(None, alias="serviceNumber")
    company: Optional[str] = None
    status: Optional[str] = None

    class Config:
        populate_by_name = True

class PersonnelStatusUpdate(BaseModel):
    status: str


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: int
    timestamp: datetime
    user_id: Optional[int] = Field(None, serialization_alias="userId")
    user_name: str = Field(..., serialization_alias="userName")
    user_role: str = Field(..., serialization_alias="userRole")
    action: EnumStr
    resource: EnumStr
    resource_id: Optional[str] = Field(None, serialization_alias="resourceId")
    details: Optional[str] = None
    ip_address: Optional[str] = Field(None, serialization_alias="ipAddress")
    user_agent: Optional[str] = Field(None, serialization_alias="userAgent")

    class Config:
        from_attributes = True

class ClientAuditEvent(BaseModel):
    action: str
    resource: str
    resource_id: Optional[str] = Field(None, alias="resourceId")
    details: Optional[str] = Field(None, max_length=2000)

    class Config:
        populate_by_name = True


# ---- Generic ----
class MessageResponse(BaseModel):
    success: bool = True
    message: str
