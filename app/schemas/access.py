from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class AccessCodeRequest(BaseModel):
    action: str
    password: Optional[str] = None
    email: Optional[str] = None
    companyName: Optional[str] = None
    code: Optional[str] = None


class ActivateRequest(BaseModel):
    email: EmailStr
    licenseKey: Optional[str] = None


class VerifyTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)
    scope: str = "ma"


class UsageRequest(BaseModel):
    email: EmailStr
    product: str = "market-assassin"


class GrantRequest(BaseModel):
    email: EmailStr
    product: str
    tier: Optional[str] = None
    customerName: Optional[str] = None


class RevokeRequest(BaseModel):
    email: EmailStr
    product: str


class TokenCreateRequest(BaseModel):
    email: EmailStr
    product: str = "both"  # market-assassin | database | both
    customerName: Optional[str] = None
