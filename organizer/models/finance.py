"""
Finance Models

Transactions, accounts, budgets, bills and savings goals.

DESIGN DECISION: Money is a Decimal with two places plus an ISO 4217
currency code. Floats never hold an amount.

Cross references (transaction -> account, bill -> account) are ids.
Deleting an account nulls the reference on its dependents.
"""

from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from organizer.models.common import Entity, Location, StrippedStr, add_months, utcnow


Amount = Annotated[Decimal, Field(gt=0, max_digits=14, decimal_places=2)]
Balance = Annotated[Decimal, Field(max_digits=14, decimal_places=2)]
CurrencyCode = Annotated[str, Field(min_length=3, max_length=3, pattern="^[A-Z]{3}$")]


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class Priority(str, Enum):
    """Transaction and bill priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class RecurringInterval(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    INVESTMENT = "investment"
    CASH = "cash"
    OTHER = "other"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class BillStatus(str, Enum):
    """Derived bill status, never stored."""
    PAID = "paid"
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    UPCOMING = "upcoming"


class SavingsGoalCategory(str, Enum):
    EMERGENCY = "emergency"
    VACATION = "vacation"
    HOME = "home"
    VEHICLE = "vehicle"
    EDUCATION = "education"
    RETIREMENT = "retirement"
    WEDDING = "wedding"
    BUSINESS = "business"
    OTHER = "other"


# =============================================================================
# CATEGORIES
# =============================================================================

class TransactionCategory(BaseModel):
    """A spending/income category. Transactions refer to it by name."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: StrippedStr = Field(..., min_length=1, max_length=100)
    icon_name: str = "ellipsis.circle.fill"
    color: str = Field(default="#8E8E93", pattern=r"^#[0-9A-Fa-f]{6}$")


PREDEFINED_CATEGORIES: tuple[TransactionCategory, ...] = (
    TransactionCategory(name="Food & Dining", icon_name="fork.knife", color="#FF9500"),
    TransactionCategory(name="Transportation", icon_name="car.fill", color="#007AFF"),
    TransactionCategory(name="Shopping", icon_name="bag.fill", color="#AF52DE"),
    TransactionCategory(name="Entertainment", icon_name="tv.fill", color="#FF2D55"),
    TransactionCategory(name="Healthcare", icon_name="cross.fill", color="#FF3B30"),
    TransactionCategory(name="Utilities", icon_name="bolt.fill", color="#FFCC00"),
    TransactionCategory(name="Housing", icon_name="house.fill", color="#A2845E"),
    TransactionCategory(name="Education", icon_name="book.fill", color="#5856D6"),
    TransactionCategory(name="Travel", icon_name="airplane", color="#32ADE6"),
    TransactionCategory(name="Gifts", icon_name="gift.fill", color="#00C7BE"),
    TransactionCategory(name="Insurance", icon_name="shield.fill", color="#30B0C7"),
    TransactionCategory(name="Investments", icon_name="chart.line.uptrend.xyaxis", color="#34C759"),
    TransactionCategory(name="Salary", icon_name="dollarsign.circle.fill", color="#34C759"),
    TransactionCategory(name="Freelance", icon_name="laptopcomputer", color="#007AFF"),
    TransactionCategory(name="Other", icon_name="ellipsis.circle.fill", color="#8E8E93"),
)

OTHER_CATEGORY = "Other"


# =============================================================================
# ENTITIES
# =============================================================================

class Account(Entity):
    """A bank, card or cash account."""

    name: StrippedStr = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.CHECKING
    balance: Balance = Decimal("0.00")
    currency: CurrencyCode = "USD"
    institution: Optional[StrippedStr] = Field(default=None, max_length=100)
    is_active: bool = True


class Transaction(Entity):
    """
    A single income or expense.

    Immutable once stored; edits replace the whole record.
    """

    amount: Amount
    currency: CurrencyCode = "USD"
    type: TransactionType = TransactionType.EXPENSE
    category: StrippedStr = Field(..., min_length=1, max_length=100)
    merchant: StrippedStr = Field(..., min_length=1, max_length=200)
    date: AwareDatetime = Field(default_factory=utcnow)
    account_id: Optional[UUID] = None

    notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_image: Optional[bytes] = None
    location: Optional[Location] = None
    priority: Priority = Priority.NORMAL
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    tags: frozenset[str] = Field(default_factory=frozenset)
    is_anomaly: bool = False

    @model_validator(mode="after")
    def validate_recurrence(self) -> "Transaction":
        if self.is_recurring and self.recurring_interval is None:
            raise ValueError("Recurring transactions need an interval")
        if not self.is_recurring and self.recurring_interval is not None:
            raise ValueError("Only recurring transactions can have an interval")
        return self

    @property
    def signed_amount(self) -> Decimal:
        """Positive for income, negative for expense."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


class Budget(Entity):
    """Spending ceiling for one category over a period."""

    name: StrippedStr = Field(..., min_length=1, max_length=100)
    category: StrippedStr = Field(..., min_length=1, max_length=100)
    amount: Balance = Field(..., ge=0)
    spent: Balance = Field(default=Decimal("0.00"), ge=0)
    currency: CurrencyCode = "USD"
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True

    @model_validator(mode="after")
    def validate_window(self) -> "Budget":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.spent

    @property
    def spending_percentage(self) -> Decimal:
        """spent / amount, or 0 for a zero ceiling."""
        if self.amount == 0:
            return Decimal("0")
        return self.spent / self.amount

    def covers(self, day: date) -> bool:
        """Is ``day`` inside this budget's window? Open ends are unbounded."""
        if self.start_date and day < self.start_date:
            return False
        if self.end_date and day > self.end_date:
            return False
        return True


class Bill(Entity):
    """A bill or subscription with a due date."""

    name: StrippedStr = Field(..., min_length=1, max_length=100)
    amount: Amount
    currency: CurrencyCode = "USD"
    due_date: date
    is_paid: bool = False
    paid_date: Optional[date] = None
    category: StrippedStr = Field(default=OTHER_CATEGORY, min_length=1, max_length=100)
    account_id: Optional[UUID] = None
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    service_provider: StrippedStr = Field(default="", max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    priority: Priority = Priority.NORMAL

    @model_validator(mode="after")
    def validate_payment(self) -> "Bill":
        if self.paid_date is not None and not self.is_paid:
            raise ValueError("Unpaid bills cannot have a paid date")
        return self

    def days_until_due(self, today: date) -> int:
        return (self.due_date - today).days

    def status(self, today: date) -> BillStatus:
        if self.is_paid:
            return BillStatus.PAID
        days = self.days_until_due(today)
        if days < 0:
            return BillStatus.OVERDUE
        if days <= 7:
            return BillStatus.DUE_SOON
        return BillStatus.UPCOMING


class Contribution(Entity):
    """Money put toward a savings goal."""

    amount: Amount
    date: date
    notes: Optional[str] = Field(default=None, max_length=500)
    source: str = Field(default="manual", max_length=100)
    is_recurring: bool = False


class SavingsGoal(Entity):
    """A target amount the user is saving toward."""

    name: StrippedStr = Field(..., min_length=1, max_length=100)
    target_amount: Amount
    current_amount: Balance = Field(default=Decimal("0.00"), ge=0)
    currency: CurrencyCode = "USD"
    target_date: Optional[date] = None
    monthly_contribution: Balance = Field(default=Decimal("0.00"), ge=0)
    category: SavingsGoalCategory = SavingsGoalCategory.OTHER
    notes: Optional[str] = Field(default=None, max_length=1000)
    contributions: list[Contribution] = Field(default_factory=list)
    is_active: bool = True

    @property
    def progress_percentage(self) -> Decimal:
        return self.current_amount / self.target_amount

    @property
    def remaining(self) -> Decimal:
        return max(self.target_amount - self.current_amount, Decimal("0.00"))

    def estimated_completion_date(self, today: date) -> Optional[date]:
        """Whole months of the monthly contribution needed, counted from today."""
        if self.monthly_contribution <= 0:
            return None
        months = int(self.remaining / self.monthly_contribution)
        return add_months(today, months)


# =============================================================================
# FORM INPUT
# =============================================================================

class TransactionDraft(BaseModel):
    """
    Raw transaction form input.

    Everything is optional and amounts are text, exactly as typed.
    A draft becomes a Transaction only after validation passes.
    """
    amount: StrippedStr = ""
    merchant: StrippedStr = ""
    category: Optional[StrippedStr] = None
    account_id: Optional[UUID] = None
    type: TransactionType = TransactionType.EXPENSE
    date: Optional[AwareDatetime] = None
    currency: Optional[StrippedStr] = None
    notes: str = ""
    receipt_image: Optional[bytes] = None
    location: Optional[Location] = None
    priority: Priority = Priority.NORMAL
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    tags: set[str] = Field(default_factory=set)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: set[str]) -> set[str]:
        return {t.strip() for t in v if t.strip()}


# =============================================================================
# REPORTS
# =============================================================================

class CategorySpending(BaseModel):
    """Expense total for one category, compared to its budget if any."""

    category: str
    amount: Decimal
    percentage: Decimal
    budget: Optional[Decimal] = None
    remaining: Optional[Decimal] = None
    is_over_budget: bool = False


class FinanceSummary(BaseModel):
    """Dashboard snapshot for the current month."""

    total_balance: Decimal
    net_worth: Decimal
    monthly_income: Decimal
    monthly_expenses: Decimal
    monthly_savings: Decimal
    upcoming_bills_count: int = Field(ge=0)
    overdue_bills_count: int = Field(ge=0)
    recent_transactions: list[Transaction] = Field(default_factory=list)
    category_spending: list[CategorySpending] = Field(default_factory=list)
    currency: str = "USD"
    generated_at: AwareDatetime = Field(default_factory=utcnow)


class CategorySummary(BaseModel):
    category: str
    total_amount: Decimal
    transaction_count: int = Field(ge=0)


class TaxReport(BaseModel):
    """Year-end income and expense summary with a rough tax estimate."""

    year: int = Field(..., ge=1900, le=9999)
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal
    currency: str
    categories: list[CategorySummary] = Field(default_factory=list)
    generated_at: AwareDatetime = Field(default_factory=utcnow)

    @property
    def estimated_tax_rate(self) -> Decimal:
        """Flat bracket lookup on net income; not tax advice."""
        for ceiling, rate in TAX_BRACKETS:
            if self.net_income < ceiling:
                return rate
        return TOP_TAX_RATE

    @property
    def estimated_taxes(self) -> Decimal:
        if self.net_income <= 0:
            return Decimal("0.00")
        return (self.net_income * self.estimated_tax_rate).quantize(Decimal("0.01"))


TAX_BRACKETS: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal("10000"), Decimal("0.10")),
    (Decimal("40000"), Decimal("0.15")),
    (Decimal("85000"), Decimal("0.25")),
    (Decimal("163000"), Decimal("0.28")),
    (Decimal("200000"), Decimal("0.33")),
    (Decimal("500000"), Decimal("0.35")),
)
TOP_TAX_RATE = Decimal("0.37")


def month_window(today: date) -> tuple[date, date]:
    """First and last day of the month containing ``today``."""
    first = today.replace(day=1)
    last = add_months(first, 1) - timedelta(days=1)
    return first, last
