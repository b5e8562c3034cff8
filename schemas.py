import datetime as dt
from datetime import date
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class StoredAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    icon: Optional[str] = None
    visible: Optional[bool] = None
    order: Optional[int] = None
    opening_balance_cents: Optional[int] = None


class AccountIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: Optional[str] = Field(default=None, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=16)
    visible: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)
    opening_balance_cents: Optional[int] = None


class AccountReorderIn(BaseModel):
    dragged_id: str
    target_id: str


class CategoryLabelIn(BaseModel):
    label: str = Field(..., max_length=100)


class TransactionIn(BaseModel):
    date: date
    type: str = Field(..., min_length=1, max_length=20)
    amount: Decimal = Field(..., gt=0)
    category: str = Field(default="", max_length=100)
    description: str = Field(default="", max_length=500)
    debit_account: str = Field(default="", max_length=120)
    credit_account: str = Field(default="", max_length=120)

    @model_validator(mode="after")
    def _check_sides(self) -> "TransactionIn":
        self.type = self.type.lower()
        self.category = self.category.strip()
        self.description = self.description.strip()
        self.debit_account = self.debit_account.strip()
        self.credit_account = self.credit_account.strip()

        if self.type == "pay":
            if not self.debit_account or not self.description:
                raise ValueError("Pay needs a source account and a payee")
            self.credit_account = ""
        elif self.type == "receive":
            if not self.credit_account or not self.description:
                raise ValueError("Receive needs a target account and a payer")
            self.debit_account = ""
        elif self.type == "transfer":
            if not self.debit_account or not self.credit_account:
                raise ValueError("Transfer needs both accounts")
            if self.debit_account == self.credit_account:
                raise ValueError("Transfer accounts must be different")
            if not self.category:
                self.category = "Transfer"
        if not self.category:
            raise ValueError("Category is required")
        return self


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: Optional[dt.date] = None
    type: Optional[str] = Field(default=None, min_length=1, max_length=20)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    debit_account: Optional[str] = Field(default=None, max_length=120)
    credit_account: Optional[str] = Field(default=None, max_length=120)


class BulkTransactionIn(BaseModel):
    """Lenient row for bulk and migration imports; accepts camelCase keys."""

    model_config = ConfigDict(extra="ignore")

    date: Optional[dt.date] = None
    type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("type", "transactionType")
    )
    amount: Any = None
    category: Optional[str] = None
    description: Optional[str] = None
    debit_account: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("debit_account", "debitAccount")
    )
    credit_account: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("credit_account", "creditAccount")
    )

    @field_validator("date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Optional[dt.date]:
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, dt.date):
            return value
        if isinstance(value, str) and value.strip():
            try:
                return dt.date.fromisoformat(value.strip()[:10])
            except ValueError:
                return None
        return None

    @field_validator(
        "type", "category", "description", "debit_account", "credit_account", mode="before"
    )
    @classmethod
    def _lenient_text(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)


class BulkTransactionsIn(BaseModel):
    transactions: list[BulkTransactionIn]


class CSVRow(BaseModel):
    date: date
    type: str
    amount_cents: int
    category: str
    description: str
    debit_account: str
    credit_account: str


class ReportViews(BaseModel):
    summary: bool = True
    category_table: bool = True
    account_table: bool = False
    trend_chart: bool = True
    detail_table: bool = True


DateRangeSlug = Literal["today", "this_month", "last_month", "custom", "all"]


class ReportSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date_range: DateRangeSlug = "today"
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    types: list[str] = Field(default_factory=lambda: ["pay", "receive"])
    accounts: list[str] = Field(default_factory=lambda: ["cash", "banks"])
    categories: list[str] = Field(default_factory=list)
    views: ReportViews = Field(default_factory=ReportViews)


class ReportTemplate(ReportSettings):
    name: str = Field(..., min_length=1, max_length=100)


class IdentityTokenIn(BaseModel):
    id_token: str = Field(..., min_length=1)
