"""
Finance Manager

Accounts, transactions, budgets, bills and savings goals, each
persisted as its own JSON file and flushed immediately on change.

Derived state is kept consistent on every transaction change:
- the linked account's balance moves by the transaction's signed
  amount (reverted on delete, re-applied on edit)
- every budget's ``spent`` is recomputed from the expense
  transactions of its category inside its window

Deleting an account nulls ``account_id`` on its transactions and bills.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog

from organizer.audit import AuditLogger
from organizer.config import AppSettings, get_settings
from organizer.managers.base import EntityCollection, EntityRef, ManagerBase, entity_id
from organizer.models.audit import AuditEventBuilder
from organizer.models.common import add_months, evolve, utcnow
from organizer.models.finance import (
    PREDEFINED_CATEGORIES,
    Account,
    Bill,
    Budget,
    Contribution,
    FinanceSummary,
    RecurringInterval,
    SavingsGoal,
    TaxReport,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from organizer.models.validation import ValidationResult
from organizer.queries.finance import budget_spent, build_summary, filter_transactions, tax_report
from organizer.services.effects import EffectQueue
from organizer.services.storage import CollectionStorage, ImmediateSaver, NotFoundError
from organizer.validation import TransactionValidator, ValidationError


logger = structlog.get_logger(__name__)

ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"
BUDGETS = "budgets"
BILLS = "bills"
SAVINGS_GOALS = "savings_goals"


def next_due_date(due: date, interval: RecurringInterval) -> date:
    """The following occurrence of a recurring bill."""
    if interval == RecurringInterval.WEEKLY:
        return due + timedelta(weeks=1)
    months = {
        RecurringInterval.MONTHLY: 1,
        RecurringInterval.QUARTERLY: 3,
        RecurringInterval.YEARLY: 12,
    }[interval]
    return add_months(due, months)


class FinanceManager(ManagerBase):
    """In-memory finance collections with immediate persistence."""

    family = "finance"

    def __init__(
        self,
        storages: dict[str, CollectionStorage],
        effects: EffectQueue,
        audit: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        validator: Optional[TransactionValidator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(effects, audit)
        self._settings = settings or get_settings().app
        self._validator = validator or TransactionValidator(self._settings, clock)
        self._clock = clock

        self._accounts: EntityCollection[Account] = EntityCollection(kind="account")
        self._transactions: EntityCollection[Transaction] = EntityCollection(kind="transaction")
        self._budgets: EntityCollection[Budget] = EntityCollection(kind="budget")
        self._bills: EntityCollection[Bill] = EntityCollection(kind="bill")
        self._goals: EntityCollection[SavingsGoal] = EntityCollection(kind="savings goal")
        self._collections: dict[str, EntityCollection] = {
            ACCOUNTS: self._accounts,
            TRANSACTIONS: self._transactions,
            BUDGETS: self._budgets,
            BILLS: self._bills,
            SAVINGS_GOALS: self._goals,
        }

        missing = set(self._collections) - set(storages)
        if missing:
            raise ValueError(f"Missing storage for: {', '.join(sorted(missing))}")

        self._savers: dict[str, ImmediateSaver] = {
            name: ImmediateSaver(
                storages[name],
                self._snapshot_of(name),
                effects,
                on_error=self._on_save_error,
            )
            for name in self._collections
        }
        self.last_validation: Optional[ValidationResult] = None

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    def _snapshot_of(self, name: str) -> Callable[[], list]:
        def snapshot() -> list:
            with self._lock:
                return self._collections[name].snapshot()
        return snapshot

    @property
    def accounts(self) -> list[Account]:
        with self._lock:
            return self._accounts.snapshot()

    @property
    def transactions(self) -> list[Transaction]:
        with self._lock:
            return self._transactions.snapshot()

    @property
    def budgets(self) -> list[Budget]:
        with self._lock:
            return self._budgets.snapshot()

    @property
    def bills(self) -> list[Bill]:
        with self._lock:
            return self._bills.snapshot()

    @property
    def savings_goals(self) -> list[SavingsGoal]:
        with self._lock:
            return self._goals.snapshot()

    @property
    def base_currency(self) -> str:
        return self._settings.base_currency

    @property
    def categories(self) -> list[str]:
        """Predefined category names followed by any custom ones in use."""
        names = [c.name for c in PREDEFINED_CATEGORIES]
        with self._lock:
            used = [t.category for t in self._transactions] + [b.category for b in self._budgets]
        for name in used:
            if name not in names:
                names.append(name)
        return names

    def get_account(self, account_id: UUID) -> Account:
        with self._lock:
            return self._accounts.get(account_id)

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        with self._lock:
            return self._transactions.get(transaction_id)

    def get_bill(self, bill_id: UUID) -> Bill:
        with self._lock:
            return self._bills.get(bill_id)

    def get_savings_goal(self, goal_id: UUID) -> SavingsGoal:
        with self._lock:
            return self._goals.get(goal_id)

    def load(self) -> None:
        """Read every finance collection. Nothing is seeded."""
        loaded = {
            name: self._load(saver, list)[0]
            for name, saver in self._savers.items()
        }
        with self._lock:
            for name, items in loaded.items():
                self._collections[name].reset(items)
        self._publish("loaded")

    def _changed(self, action: str, item_id: Optional[UUID], *families: str) -> None:
        self._publish(action, item_id)
        for name in families:
            self._savers[name].request()

    # -------------------------------------------------------------------------
    # Derived state (call with the lock held)
    # -------------------------------------------------------------------------

    def _adjust_balance(self, account_id: Optional[UUID], delta: Decimal) -> bool:
        if account_id is None or delta == 0:
            return False
        account = self._accounts.find(account_id)
        if account is None:
            return False
        self._accounts.replace(evolve(account, balance=account.balance + delta))
        return True

    def _recompute_budgets(self) -> bool:
        """Refresh every budget's spent. Returns True if any changed."""
        tz = self._settings.tzinfo
        transactions = self._transactions.snapshot()
        changed = False
        for budget in self._budgets.snapshot():
            spent = budget_spent(budget, transactions, tz)
            if spent != budget.spent:
                self._budgets.replace(evolve(budget, spent=spent))
                changed = True
        return changed

    def _require_account(self, account_id: Optional[UUID], currency: Optional[str] = None) -> None:
        """
        Raises:
            NotFoundError: If ``account_id`` names no account
            ValidationError: If ``currency`` differs from the account's
        """
        if account_id is None:
            return
        account = self._accounts.get(account_id)
        if currency is not None and currency != account.currency:
            raise ValidationError.for_field(
                "currency",
                f"Account '{account.name}' holds {account.currency}, not {currency}",
                "currency_mismatch",
            )

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def add_account(self, account: Account) -> Account:
        with self._lock:
            self._accounts.add(account)
        self._audit.log_created("account", account.id, account.name)
        self._changed("added", account.id, ACCOUNTS)
        return account

    def update_account(self, account: Account) -> Account:
        with self._lock:
            self._accounts.replace(account)
        self._audit.log_updated("account", account.id)
        self._changed("updated", account.id, ACCOUNTS)
        return account

    def delete_account(self, account: EntityRef) -> Account:
        """Remove an account; its transactions and bills keep existing unlinked."""
        account_id = entity_id(account)
        with self._lock:
            removed = self._accounts.remove(account_id)
            for t in [t for t in self._transactions if t.account_id == account_id]:
                self._transactions.replace(evolve(t, account_id=None))
            for b in [b for b in self._bills if b.account_id == account_id]:
                self._bills.replace(evolve(b, account_id=None))

        self._audit.log_deleted("account", account_id)
        self._changed("deleted", account_id, ACCOUNTS, TRANSACTIONS, BILLS)
        return removed

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def add_transaction(self, transaction: Transaction) -> Transaction:
        """
        Record a transaction and apply it to its account and budgets.

        Raises:
            NotFoundError: If it names an account that does not exist
            ValidationError: If its currency differs from the account's
            ValueError: If its id is already present
        """
        with self._lock:
            self._require_account(transaction.account_id, transaction.currency)
            self._transactions.add(transaction)
            self._adjust_balance(transaction.account_id, transaction.signed_amount)
            self._recompute_budgets()

        self._audit.log_created(
            "transaction", transaction.id, f"{transaction.merchant} {transaction.amount}"
        )
        self._changed("added", transaction.id, TRANSACTIONS, ACCOUNTS, BUDGETS)
        return transaction

    def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace a transaction, moving its effect between accounts if needed.

        Raises:
            NotFoundError: If the transaction or its account does not exist
            ValidationError: If its currency differs from the account's
        """
        with self._lock:
            self._require_account(transaction.account_id, transaction.currency)
            previous = self._transactions.replace(transaction)
            self._adjust_balance(previous.account_id, -previous.signed_amount)
            self._adjust_balance(transaction.account_id, transaction.signed_amount)
            self._recompute_budgets()

        self._audit.log_updated("transaction", transaction.id)
        self._changed("updated", transaction.id, TRANSACTIONS, ACCOUNTS, BUDGETS)
        return transaction

    def delete_transaction(self, transaction: EntityRef) -> Transaction:
        transaction_id = entity_id(transaction)
        with self._lock:
            removed = self._transactions.remove(transaction_id)
            self._adjust_balance(removed.account_id, -removed.signed_amount)
            self._recompute_budgets()

        self._audit.log_deleted("transaction", transaction_id)
        self._changed("deleted", transaction_id, TRANSACTIONS, ACCOUNTS, BUDGETS)
        return removed

    def validate_draft(self, draft: TransactionDraft) -> ValidationResult:
        with self._lock:
            currencies = {a.id: a.currency for a in self._accounts}
        return self._validator.validate(
            draft,
            known_accounts=set(currencies),
            known_categories=self.categories,
            account_currencies=currencies,
        )

    def create_transaction(self, draft: TransactionDraft) -> Transaction:
        """
        Validate form input and record the resulting transaction.

        Warnings do not block; they are left on ``last_validation``.

        Raises:
            ValidationError: If a required field is missing or the amount
                is not a valid positive decimal. Nothing is stored.
        """
        result = self.validate_draft(draft)
        self.last_validation = result
        if not result.schema_valid:
            self._audit.log_validation_failed(
                "transaction",
                "schema",
                [issue.model_dump() for issue in result.issues],
            )
            raise ValidationError(result)

        return self.add_transaction(self._validator.build_transaction(draft, result))

    def filtered_transactions(
        self,
        search_text: str = "",
        type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        return filter_transactions(self.transactions, search_text, type)

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def add_budget(self, budget: Budget) -> Budget:
        with self._lock:
            stored = evolve(
                budget,
                spent=budget_spent(budget, self._transactions.snapshot(), self._settings.tzinfo),
            )
            self._budgets.add(stored)
        self._audit.log_created("budget", stored.id, stored.name)
        self._changed("added", stored.id, BUDGETS)
        return stored

    def update_budget(self, budget: Budget) -> Budget:
        with self._lock:
            stored = evolve(
                budget,
                spent=budget_spent(budget, self._transactions.snapshot(), self._settings.tzinfo),
            )
            self._budgets.replace(stored)
        self._audit.log_updated("budget", stored.id)
        self._changed("updated", stored.id, BUDGETS)
        return stored

    def delete_budget(self, budget: EntityRef) -> Budget:
        budget_id = entity_id(budget)
        with self._lock:
            removed = self._budgets.remove(budget_id)
        self._audit.log_deleted("budget", budget_id)
        self._changed("deleted", budget_id, BUDGETS)
        return removed

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    def add_bill(self, bill: Bill) -> Bill:
        with self._lock:
            self._require_account(bill.account_id, bill.currency)
            self._bills.add(bill)
        self._audit.log_created("bill", bill.id, bill.name)
        self._changed("added", bill.id, BILLS)
        return bill

    def update_bill(self, bill: Bill) -> Bill:
        with self._lock:
            self._require_account(bill.account_id, bill.currency)
            self._bills.replace(bill)
        self._audit.log_updated("bill", bill.id)
        self._changed("updated", bill.id, BILLS)
        return bill

    def delete_bill(self, bill: EntityRef) -> Bill:
        bill_id = entity_id(bill)
        with self._lock:
            removed = self._bills.remove(bill_id)
        self._audit.log_deleted("bill", bill_id)
        self._changed("deleted", bill_id, BILLS)
        return removed

    def mark_bill_as_paid(
        self,
        bill: EntityRef,
        paid_on: Optional[date] = None,
    ) -> Bill:
        """
        Mark a bill paid.

        A bill linked to an account in the same currency also records the payment as an
        expense on that account. A recurring bill gets its next
        occurrence added, unpaid.

        Raises:
            NotFoundError: If the bill does not exist
            ValueError: If the bill is already paid
        """
        with self._lock:
            current = self._bills.get(entity_id(bill))
            if current.is_paid:
                raise ValueError(f"Bill '{current.name}' is already paid")

            paid_on = paid_on or self._clock().astimezone(self._settings.tzinfo).date()
            stored = evolve(current, is_paid=True, paid_date=paid_on)
            self._bills.replace(stored)

            if current.is_recurring and current.recurring_interval is not None:
                data = current.model_dump(exclude={"id"})
                data["due_date"] = next_due_date(current.due_date, current.recurring_interval)
                follow_up = Bill.model_validate(data)
                self._bills.add(follow_up)
                logger.info("bill_rolled_over", bill_id=str(current.id), next_id=str(follow_up.id))

            account = self._accounts.find(current.account_id) if current.account_id else None
            pay_from_account = account is not None and account.currency == current.currency

        self._audit.log(AuditEventBuilder.bill_paid(
            stored.id, stored.name, f"{stored.amount} {stored.currency}"
        ))
        self._changed("updated", stored.id, BILLS)

        if pay_from_account:
            self.add_transaction(Transaction(
                amount=current.amount,
                currency=current.currency,
                type=TransactionType.EXPENSE,
                category=current.category,
                merchant=current.service_provider or current.name,
                date=self._clock(),
                account_id=current.account_id,
                notes=f"Payment for {current.name}",
                priority=current.priority,
            ))
        return stored

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    def add_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        with self._lock:
            self._goals.add(goal)
        self._audit.log_created("savings_goal", goal.id, goal.name)
        self._changed("added", goal.id, SAVINGS_GOALS)
        return goal

    def update_savings_goal(self, goal: SavingsGoal) -> SavingsGoal:
        with self._lock:
            self._goals.replace(goal)
        self._audit.log_updated("savings_goal", goal.id)
        self._changed("updated", goal.id, SAVINGS_GOALS)
        return goal

    def delete_savings_goal(self, goal: EntityRef) -> SavingsGoal:
        goal_id = entity_id(goal)
        with self._lock:
            removed = self._goals.remove(goal_id)
        self._audit.log_deleted("savings_goal", goal_id)
        self._changed("deleted", goal_id, SAVINGS_GOALS)
        return removed

    def add_contribution(
        self,
        goal: EntityRef,
        amount: Decimal,
        on: Optional[date] = None,
        notes: Optional[str] = None,
        source: str = "manual",
    ) -> SavingsGoal:
        """Record money put toward a goal and raise its current amount."""
        contribution = Contribution(
            amount=amount,
            date=on or self._clock().astimezone(self._settings.tzinfo).date(),
            notes=notes,
            source=source,
        )
        with self._lock:
            current = self._goals.get(entity_id(goal))
            stored = evolve(
                current,
                current_amount=current.current_amount + contribution.amount,
                contributions=[*current.contributions, contribution],
            )
            self._goals.replace(stored)

        self._audit.log_updated("savings_goal", stored.id, ["current_amount", "contributions"])
        self._changed("updated", stored.id, SAVINGS_GOALS)
        return stored

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def summary(self, today: Optional[date] = None) -> FinanceSummary:
        tz = self._settings.tzinfo
        today = today or self._clock().astimezone(tz).date()
        with self._lock:
            accounts = self._accounts.snapshot()
            transactions = self._transactions.snapshot()
            bills = self._bills.snapshot()
            budgets = self._budgets.snapshot()
        return build_summary(
            accounts, transactions, bills, budgets, today, tz, self.base_currency
        )

    def generate_tax_report(self, year: int) -> TaxReport:
        return tax_report(self.transactions, year, self.base_currency, self._settings.tzinfo)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        for saver in self._savers.values():
            saver.flush()

    def close(self) -> None:
        for saver in self._savers.values():
            saver.close()
