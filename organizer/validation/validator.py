"""
Two-Stage Transaction Validation

DESIGN DECISION: Form input is validated in two distinct stages
before a Transaction is constructed:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (amount, merchant, category, account)
- Amount parses as a finite decimal with at most two places
- Recurring transactions name an interval
This is what blocks the save.

STAGE 2 - SEMANTIC VALIDATION:
- Future and very old dates
- Unusually large or small amounts
- Unknown categories and odd merchant names
These are warnings: shown to the user, never blocking.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the caller decides.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Mapping, Optional
from uuid import UUID

from organizer.config import AppSettings, get_settings
from organizer.models.common import utcnow
from organizer.models.finance import (
    OTHER_CATEGORY,
    PREDEFINED_CATEGORIES,
    Transaction,
    TransactionDraft,
)
from organizer.models.validation import ValidationIssue, ValidationResult


class ValidationError(ValueError):
    """Form input failed schema validation; nothing was saved."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(messages or "Validation failed")

    @classmethod
    def for_field(
        cls,
        field: str,
        message: str,
        issue_type: str = "invalid_value",
    ) -> "ValidationError":
        """A single schema error on one field."""
        return cls(ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[ValidationIssue(
                field=field,
                issue_type=issue_type,
                message=message,
                severity="error",
            )],
        ))


# Merchant keywords -> category, checked in order
_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Food & Dining", ("restaurant", "cafe", "pizza", "burger")),
    ("Transportation", ("uber", "lyft", "gas", "shell")),
    ("Shopping", ("amazon", "walmart", "target", "store")),
    ("Entertainment", ("netflix", "spotify", "movie", "theater")),
)


def suggest_category(merchant: str) -> str:
    """Guess a category name from merchant keywords; "Other" when nothing matches."""
    lowered = merchant.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return OTHER_CATEGORY


def parse_amount(text: str) -> Optional[Decimal]:
    """Parse a typed amount. Thousands separators are allowed; None if unparseable."""
    cleaned = text.strip().replace(",", "")
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


class TransactionValidator:
    """
    Validates transaction form input through a two-stage pipeline.

    Stage 1: Schema validation (blocks the save)
    Stage 2: Semantic validation (warnings only)
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings or get_settings().app
        self._clock = clock

    def _validate_schema(
        self,
        draft: TransactionDraft,
        known_accounts: Optional[set[UUID]],
        account_currencies: Optional[Mapping[UUID, str]] = None,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not draft.amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        else:
            amount = parse_amount(draft.amount)
            if amount is None:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_format",
                    message=f"'{draft.amount}' is not a valid amount",
                    severity="error",
                    suggested_fix="Enter a number such as 12.50",
                ))
            elif amount <= 0:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be greater than zero",
                    severity="error",
                ))
            elif amount.as_tuple().exponent < -2:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_format",
                    message="Amount can have at most two decimal places",
                    severity="error",
                ))

        if not draft.merchant:
            issues.append(ValidationIssue(
                field="merchant",
                issue_type="missing",
                message="Merchant is required",
                severity="error",
            ))

        if not draft.category:
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
                suggested_fix=(
                    f"Try '{suggest_category(draft.merchant)}'" if draft.merchant else None
                ),
            ))

        if draft.account_id is None:
            issues.append(ValidationIssue(
                field="account",
                issue_type="missing",
                message="Account is required",
                severity="error",
            ))
        elif known_accounts is not None and draft.account_id not in known_accounts:
            issues.append(ValidationIssue(
                field="account",
                issue_type="not_found",
                message="Selected account no longer exists",
                severity="error",
            ))

        if draft.is_recurring and draft.recurring_interval is None:
            issues.append(ValidationIssue(
                field="recurring_interval",
                issue_type="missing",
                message="Recurring transactions need an interval",
                severity="error",
            ))

        if draft.currency and (
            len(draft.currency) != 3 or not draft.currency.isalpha()
        ):
            issues.append(ValidationIssue(
                field="currency",
                issue_type="invalid_format",
                message=f"'{draft.currency}' is not a currency code",
                severity="error",
            ))
        elif account_currencies is not None and draft.account_id in account_currencies:
            currency = (draft.currency or self._settings.base_currency).upper()
            account_currency = account_currencies[draft.account_id]
            if currency != account_currency:
                issues.append(ValidationIssue(
                    field="currency",
                    issue_type="currency_mismatch",
                    message=f"Account holds {account_currency}, not {currency}",
                    severity="error",
                    suggested_fix=f"Record it in {account_currency} or pick another account",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        draft: TransactionDraft,
        known_categories: Iterable[str],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        now = self._clock()

        if draft.date is not None:
            max_future = now + timedelta(days=self._settings.future_date_tolerance_days)
            if draft.date > max_future:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"Date ({draft.date.date()}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))
            elif draft.date < now - timedelta(days=365 * 2):
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="suspicious_date",
                    message=f"Date ({draft.date.date()}) seems unusually old",
                    severity="warning",
                ))

        amount = parse_amount(draft.amount)
        threshold = Decimal(str(self._settings.large_transaction_amount))
        if amount is not None and amount > threshold:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))
        elif amount is not None and amount < Decimal("1"):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount}) seems unusually low",
                severity="warning",
            ))

        if draft.category and draft.category not in set(known_categories):
            issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"'{draft.category}' is not one of your categories",
                severity="warning",
            ))

        # Merchant name sanity (not just numbers/symbols)
        name = draft.merchant
        if name:
            alpha_count = sum(1 for c in name if c.isalpha())
            if alpha_count / len(name) < 0.3:
                issues.append(ValidationIssue(
                    field="merchant",
                    issue_type="suspicious_value",
                    message="Merchant name looks unusual (too many numbers/symbols)",
                    severity="warning",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def validate(
        self,
        draft: TransactionDraft,
        known_accounts: Optional[set[UUID]] = None,
        known_categories: Optional[Iterable[str]] = None,
        account_currencies: Optional[Mapping[UUID, str]] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            draft: Raw form input
            known_accounts: Ids of existing accounts; None skips the check
            known_categories: Category names considered valid;
                             defaults to the predefined categories
            account_currencies: Currency of each account; a draft in a
                different currency than its account is refused

        Returns:
            ValidationResult with all issues found
        """
        if known_categories is None:
            known_categories = [c.name for c in PREDEFINED_CATEGORIES]

        all_issues = []

        schema_valid, schema_issues = self._validate_schema(
            draft, known_accounts, account_currencies
        )
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                draft, known_categories
            )
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def build_transaction(
        self,
        draft: TransactionDraft,
        result: ValidationResult,
    ) -> Transaction:
        """
        Construct the Transaction for a draft that passed validation.

        Raises:
            ValidationError: If the result carries errors
        """
        if not result.schema_valid or result.has_errors:
            raise ValidationError(result)

        suspicious = any(
            issue.field == "amount" and issue.issue_type == "suspicious_value"
            for issue in result.issues
        )
        return Transaction(
            amount=parse_amount(draft.amount),
            currency=(draft.currency or self._settings.base_currency).upper(),
            type=draft.type,
            category=draft.category,
            merchant=draft.merchant,
            date=draft.date or self._clock(),
            account_id=draft.account_id,
            notes=draft.notes if draft.notes.strip() else None,
            receipt_image=draft.receipt_image,
            location=draft.location,
            priority=draft.priority,
            is_recurring=draft.is_recurring,
            recurring_interval=draft.recurring_interval if draft.is_recurring else None,
            tags=frozenset(draft.tags),
            is_anomaly=suspicious,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []

        if not result.schema_valid:
            lines.append("Some required information is missing or invalid:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
