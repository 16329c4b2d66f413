from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginBody(BaseModel):
    email: str
    password: str


class RegisterBody(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=100)
    password: str = Field(..., min_length=6, max_length=255)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)


class RefreshBody(BaseModel):
    refresh_token: str


class ProfilePatch(BaseModel):
    # total_balance is deliberately absent: only the ledger writes it
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    avatar: Optional[str] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    avatar: str
    total_balance: Decimal
    currency: str


class AuthResp(BaseModel):
    token_type: str = "bearer"
    access_token: str
    refresh_token: str
    expires_in: int
    user: UserOut
