"""
Request bodies for the HTTP API.

Field names are snake_case in Python and camelCase on the wire, like every
DomainModel. Response bodies are built from the domain models directly.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import EmailStr, Field

from moneyminder.models.base import DomainModel
from moneyminder.models.finance import ChatMessage


class RegisterRequest(DomainModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=1)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class LoginRequest(DomainModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ResendVerificationRequest(DomainModel):
    email: str = Field(..., min_length=1)


class CodeRequest(DomainModel):
    code: str = Field(..., min_length=1, max_length=10)


class TwoFactorLoginRequest(DomainModel):
    user_id: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=10)
    challenge_token: Optional[str] = None


class TransactionCreate(DomainModel):
    date: date
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal
    category: str = Field(..., min_length=1, max_length=100)


class GoalCreate(DomainModel):
    name: str = Field(..., min_length=1, max_length=200)
    target: Decimal = Field(..., gt=0)
    deadline: date


class ContributionRequest(DomainModel):
    amount: Decimal = Field(..., gt=0)


class ChatRequest(DomainModel):
    messages: list[ChatMessage] = Field(..., min_length=1)
