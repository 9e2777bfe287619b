import datetime as dt
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import TransactionType


HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiOutModel(ApiModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


CENT = Decimal("0.01")


def _to_cents(value: Any) -> Any:
    """Round money input to whole cents so checks see what gets stored."""
    if value is None or isinstance(value, bool):
        return value
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
        if not amount.is_finite():
            return value
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # left for the decimal validator to report
        return value


Money = Annotated[Decimal, BeforeValidator(_to_cents)]
PositiveMoney = Annotated[Decimal, Field(gt=0), BeforeValidator(_to_cents)]


def _clean_color(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if not HEX_COLOR.match(value):
        raise ValueError("Color must be a hex value like #1a2b3c")
    return value.lower()


class CategoryIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = None
    budget: Optional[PositiveMoney] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name cannot be blank")
        return value

    @field_validator("color")
    @classmethod
    def check_color(cls, value: Optional[str]) -> Optional[str]:
        return _clean_color(value)


class CategoryUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    color: Optional[str] = None
    budget: Optional[PositiveMoney] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("Name cannot be blank")
        return value

    @field_validator("color")
    @classmethod
    def check_color(cls, value: Optional[str]) -> Optional[str]:
        return _clean_color(value)


class TransactionIn(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount: Money
    category_id: int = Field(..., gt=0)
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title cannot be blank")
        return value


class TransactionUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Money] = None
    category_id: Optional[int] = Field(default=None, gt=0)
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("Title cannot be blank")
        return value


class GoalIn(ApiModel):
    name: Optional[str] = Field(default=None, max_length=120)
    target_amount: Money
    current_amount: Money = Decimal("0")
    deadline: Optional[dt.date] = None
    color: Optional[str] = None

    @field_validator("color")
    @classmethod
    def check_color(cls, value: Optional[str]) -> Optional[str]:
        return _clean_color(value)


class GoalUpdate(ApiModel):
    name: Optional[str] = Field(default=None, max_length=120)
    target_amount: Optional[Money] = None
    current_amount: Optional[Money] = None
    deadline: Optional[dt.date] = None
    color: Optional[str] = None

    @field_validator("color")
    @classmethod
    def check_color(cls, value: Optional[str]) -> Optional[str]:
        return _clean_color(value)


class CategoryOut(ApiOutModel):
    id: int
    name: str
    type: TransactionType
    color: str
    budget: Optional[float] = None
    created_at: dt.datetime
    updated_at: dt.datetime


class TransactionOut(ApiOutModel):
    id: int
    title: str
    type: TransactionType
    amount: float
    category_id: int
    date: dt.date
    created_at: dt.datetime
    updated_at: dt.datetime


class GoalOut(ApiOutModel):
    id: int
    name: str
    target_amount: float
    current_amount: float
    deadline: Optional[dt.date] = None
    color: str
    created_at: dt.datetime
    updated_at: dt.datetime


class SummaryOut(ApiOutModel):
    total_income: float
    total_expense: float
    total_balance: float


class CategorySliceOut(ApiOutModel):
    category_id: int
    name: str
    color: str
    value: float


class BudgetStatusOut(ApiOutModel):
    category_id: int
    name: str
    color: str
    budget: float
    spent: float
    remaining: float
    percentage: float
    raw_percentage: float
    level: Literal["ok", "warning", "danger"]


class MonthBucketOut(ApiOutModel):
    label: str
    year: int
    month: int
    income: float
    expense: float
    cumulative_income: float
    cumulative_expense: float


class DashboardOut(ApiOutModel):
    summary: SummaryOut
    expense_by_category: list[CategorySliceOut]
    budget_status: list[BudgetStatusOut]
    monthly: list[MonthBucketOut]


class FlowNodeOut(ApiOutModel):
    name: str
    color: str


class FlowLinkOut(ApiOutModel):
    source: int
    target: int
    value: float


class FlowOut(ApiOutModel):
    period: Literal["current", "all"]
    nodes: list[FlowNodeOut]
    links: list[FlowLinkOut]
