import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import Theme, TransactionType


class RegisterIn(BaseModel):
    username: Optional[str] = Field(default=None, max_length=50)
    password: Optional[str] = Field(default=None, max_length=128)
    email: Optional[str] = Field(default=None, max_length=255)


class LoginIn(BaseModel):
    username: Optional[str] = Field(default=None, max_length=50)
    password: Optional[str] = Field(default=None, max_length=128)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str


class ProfileOut(UserOut):
    created_at: datetime


class RegisterOut(BaseModel):
    success: bool = True
    message: str
    user: UserOut


class LoginOut(BaseModel):
    success: bool = True
    message: str
    token: str
    user: UserOut


class ProfileResponse(BaseModel):
    success: bool = True
    user: ProfileOut


class MessageOut(BaseModel):
    success: bool = True
    message: str


class TransactionIn(BaseModel):
    type: Optional[TransactionType] = None
    category: Optional[str] = Field(default=None, max_length=50)
    amount: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=12, decimal_places=2
    )
    date: Optional[dt.date] = None
    note: Optional[str] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: TransactionType
    category: str
    amount: Decimal
    date: dt.date
    note: Optional[str] = None


class BudgetIn(BaseModel):
    category: Optional[str] = Field(default=None, max_length=50)
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=12, decimal_places=2
    )


class BudgetAmountIn(BaseModel):
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=12, decimal_places=2
    )


class BudgetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    category: str
    amount: Decimal


class BudgetProgressOut(BaseModel):
    category: str
    spent: Decimal
    limit: Decimal
    percentage: float
    is_over_budget: bool


class SettingsIn(BaseModel):
    currency: Optional[str] = Field(default=None, min_length=1, max_length=10)
    theme: Optional[Theme] = None


class SettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    currency: str
    theme: Theme
