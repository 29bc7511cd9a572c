"""
Pydantic schemas for the FastAPI backend.

Field names follow the JSON the frontend already speaks (camelCase).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SignUpRequest(BaseModel):
    # Missing or mistyped fields are reported by the credential checks, not
    # by FastAPI.
    firstname: Any = None
    lastname: Any = None
    email: Any = None
    password: Any = None


class LogInRequest(BaseModel):
    email: Any = None
    password: Any = None


class RefreshTokenRequest(BaseModel):
    refreshToken: str = ""


class ForgotPasswordRequest(BaseModel):
    email: str = ""


class TokenPairResponse(BaseModel):
    accessToken: str
    refreshToken: str


class AccessTokenResponse(BaseModel):
    accessToken: str


class StatusResponse(BaseModel):
    status: Literal["ok"]


class ProfileResponse(BaseModel):
    id: str
    firstname: str
    lastname: str
    email: str
    settings: dict = Field(default_factory=dict)


class WatchPairsResponse(BaseModel):
    watchPairs: list[str]


class TransactionPayload(BaseModel):
    """
    Client-supplied transaction fields. Any ``id`` sent by the client is
    ignored; ids are always assigned by the server.
    """

    model_config = ConfigDict(extra="ignore")

    timestamp: datetime
    type: Literal["buy", "sell"]
    coin: str = Field(..., min_length=1)
    numCoins: float = Field(..., strict=True, allow_inf_nan=False)
    currency: str = Field(..., min_length=1)
    totalAmountPaid: float = Field(..., strict=True, allow_inf_nan=False)
    fee: float = Field(..., strict=True, allow_inf_nan=False)
    notes: str = ""
    exchange: str = Field(..., min_length=1)

    @field_validator("notes", mode="before")
    @classmethod
    def _default_notes(cls, value):
        return "" if value is None else value


class TransactionResponse(BaseModel):
    id: str
    timestamp: datetime
    type: Literal["buy", "sell"]
    coin: str
    numCoins: float
    currency: str
    totalAmountPaid: float
    fee: float
    notes: str = ""
    exchange: str


class UserResponse(BaseModel):
    id: str
    firstname: str
    lastname: str
    email: str
    watchPairs: list[str] = Field(default_factory=list)
    transactions: list[TransactionResponse] = Field(default_factory=list)
    settings: dict = Field(default_factory=dict)
    createdAt: Optional[float] = None
    updatedAt: Optional[float] = None
