"""
Finance Queries

DESIGN DECISION: Summaries and reports are DETERMINISTIC functions of
the stored collections. Nothing is estimated except the tax rate,
which is a flat bracket lookup on net income.

Transaction dates are bucketed into calendar days in the display
timezone before any month/year/budget-window comparison.

Amounts in different currencies are never added together. Budgets
count only transactions in their own currency; summaries and reports
cover one currency at a time.
"""

from collections import defaultdict
from datetime import date, timezone, tzinfo
from decimal import Decimal
from typing import Iterable, Optional

from organizer.models.finance import (
    Account,
    AccountType,
    Bill,
    BillStatus,
    Budget,
    CategorySpending,
    CategorySummary,
    FinanceSummary,
    TaxReport,
    Transaction,
    TransactionType,
    month_window,
)


ZERO = Decimal("0.00")
RECENT_TRANSACTIONS = 5


def local_day(transaction: Transaction, tz: tzinfo = timezone.utc) -> date:
    return transaction.date.astimezone(tz).date()


def matches_transaction(transaction: Transaction, query: str) -> bool:
    """Case-insensitive substring match on merchant, category, notes and tags."""
    needle = query.casefold()
    haystack = [transaction.merchant, transaction.category, transaction.notes or ""]
    haystack.extend(transaction.tags)
    return any(needle in field.casefold() for field in haystack)


def filter_transactions(
    transactions: Iterable[Transaction],
    search_text: str = "",
    type: Optional[TransactionType] = None,
) -> list[Transaction]:
    """Matching transactions, newest first."""
    query = search_text.strip()
    selected = [
        t for t in transactions
        if (type is None or t.type == type)
        and (not query or matches_transaction(t, query))
    ]
    return sorted(selected, key=lambda t: t.date, reverse=True)


def budget_spent(
    budget: Budget,
    transactions: Iterable[Transaction],
    tz: tzinfo = timezone.utc,
) -> Decimal:
    """Expenses in the budget's category and currency that fall inside its window."""
    total = ZERO
    for t in transactions:
        if (
            t.is_expense
            and t.category == budget.category
            and t.currency == budget.currency
            and budget.covers(local_day(t, tz))
        ):
            total += t.amount
    return total


def totals_between(
    transactions: Iterable[Transaction],
    start: date,
    end: date,
    tz: tzinfo = timezone.utc,
    currency: Optional[str] = None,
) -> tuple[Decimal, Decimal]:
    """(income, expenses) for days in [start, end], optionally in one currency."""
    income = ZERO
    expenses = ZERO
    for t in transactions:
        if currency is not None and t.currency != currency:
            continue
        if start <= local_day(t, tz) <= end:
            if t.is_expense:
                expenses += t.amount
            else:
                income += t.amount
    return income, expenses


def category_spending(
    transactions: Iterable[Transaction],
    budgets: Iterable[Budget],
    start: date,
    end: date,
    tz: tzinfo = timezone.utc,
    currency: Optional[str] = None,
) -> list[CategorySpending]:
    """
    Expense totals per category in [start, end], largest first.

    With ``currency`` set, only transactions and budgets in that
    currency are counted.
    """
    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for t in transactions:
        if currency is not None and t.currency != currency:
            continue
        if t.is_expense and start <= local_day(t, tz) <= end:
            by_category[t.category] += t.amount

    total = sum(by_category.values(), ZERO)
    ceilings = {
        b.category: b.amount
        for b in budgets
        if b.is_active and (currency is None or b.currency == currency)
    }

    rows = []
    for category, amount in by_category.items():
        ceiling = ceilings.get(category)
        rows.append(CategorySpending(
            category=category,
            amount=amount,
            percentage=(amount / total) if total else Decimal("0"),
            budget=ceiling,
            remaining=(ceiling - amount) if ceiling is not None else None,
            is_over_budget=ceiling is not None and amount > ceiling,
        ))
    return sorted(rows, key=lambda r: r.amount, reverse=True)


def build_summary(
    accounts: Iterable[Account],
    transactions: list[Transaction],
    bills: Iterable[Bill],
    budgets: Iterable[Budget],
    today: date,
    tz: tzinfo = timezone.utc,
    currency: str = "USD",
) -> FinanceSummary:
    """
    Dashboard snapshot in ``currency`` for the month containing ``today``.

    Accounts and transactions in other currencies are left out.

    total_balance: active non-credit accounts (money on hand)
    net_worth: every active account, credit card balances included
    """
    active = [a for a in accounts if a.is_active and a.currency == currency]
    total_balance = sum(
        (a.balance for a in active if a.type != AccountType.CREDIT_CARD), ZERO
    )
    net_worth = sum((a.balance for a in active), ZERO)

    in_currency = [t for t in transactions if t.currency == currency]
    start, end = month_window(today)
    income, expenses = totals_between(transactions, start, end, tz, currency)

    statuses = [b.status(today) for b in bills]

    return FinanceSummary(
        total_balance=total_balance,
        net_worth=net_worth,
        monthly_income=income,
        monthly_expenses=expenses,
        monthly_savings=income - expenses,
        upcoming_bills_count=sum(
            1 for s in statuses if s in (BillStatus.DUE_SOON, BillStatus.UPCOMING)
        ),
        overdue_bills_count=statuses.count(BillStatus.OVERDUE),
        recent_transactions=filter_transactions(in_currency)[:RECENT_TRANSACTIONS],
        category_spending=category_spending(transactions, budgets, start, end, tz, currency),
        currency=currency,
    )


def tax_report(
    transactions: Iterable[Transaction],
    year: int,
    currency: str,
    tz: tzinfo = timezone.utc,
) -> TaxReport:
    """Income, expenses and per-category totals in ``currency`` for one calendar year."""
    income = ZERO
    expenses = ZERO
    amounts: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)

    for t in transactions:
        if t.currency != currency or local_day(t, tz).year != year:
            continue
        if t.is_expense:
            expenses += t.amount
        else:
            income += t.amount
        amounts[t.category] += t.amount
        counts[t.category] += 1

    categories = sorted(
        (
            CategorySummary(category=c, total_amount=amounts[c], transaction_count=counts[c])
            for c in amounts
        ),
        key=lambda s: s.total_amount,
        reverse=True,
    )

    return TaxReport(
        year=year,
        total_income=income,
        total_expenses=expenses,
        net_income=income - expenses,
        currency=currency,
        categories=categories,
    )
