# Overview: Service-layer operations for clinic expenses and their categories.

from __future__ import annotations

from datetime import datetime

from ..decorators import guarded
from ..extensions import db
from ..models import Expense, ExpenseCategory
from ..permissions import Module, Action
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, rules_expense, validate_payload
from . import audit_service, permission_service
from .permission_service import PermissionDeniedError


EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"category", "amount_cents", "incurred_at", "description", "paid_to", "payment_method"}),
    required_on_create=frozenset({"category", "amount_cents", "incurred_at"}),
    rules=(rules_expense,),
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "display_name", "is_active"}),
    required_on_create=frozenset({"name"}),
)

AUDITED_FIELDS = ("category", "amount_cents", "incurred_at", "description", "paid_to", "payment_method")


class ExpenseNotFoundError(Exception):
    def __init__(self, message: str = "Expense not found"):
        super().__init__(message)


class ExpenseCategoryNotFoundError(Exception):
    def __init__(self, message: str = "Expense category not found"):
        super().__init__(message)


def _get_or_404(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise ExpenseNotFoundError()
    return expense


def _require_active_category(name: str) -> None:
    found = db.session.query(ExpenseCategory.id).filter_by(name=name, is_active=True).first()
    if not found:
        raise ValidationError(f"Unknown expense category: {name}")


def _month_bounds(year: int, month: int | None) -> tuple[datetime, datetime]:
    if month is None:
        return datetime(year, 1, 1), datetime(year + 1, 1, 1)
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if month == 12:
        return datetime(year, 12, 1), datetime(year + 1, 1, 1)
    return datetime(year, month, 1), datetime(year, month + 1, 1)


@guarded(Module.EXPENSES, Action.READ)
def list_expenses(actor_id: int, *, year: int | None = None, month: int | None = None) -> list[Expense]:
    """Newest first. month only applies together with year."""
    q = db.session.query(Expense)
    if year is not None:
        start, end = _month_bounds(year, month)
        q = q.filter(Expense.incurred_at >= start, Expense.incurred_at < end)
    return q.order_by(Expense.incurred_at.desc(), Expense.id.desc()).all()


@guarded(Module.EXPENSES, Action.READ)
def get_expense(actor_id: int, expense_id: int) -> Expense:
    return _get_or_404(expense_id)


@guarded(Module.EXPENSES, Action.CREATE)
def create_expense(actor_id: int, payload: dict) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    _require_active_category(patch["category"])

    expense = Expense(recorded_by_user_id=actor_id, **patch)
    db.session.add(expense)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.EXPENSES,
        entity_id=expense.id,
        entity_name=expense.description or expense.category,
        changes={"category": expense.category, "amount_cents": expense.amount_cents},
    )
    return expense


@guarded(Module.EXPENSES, Action.UPDATE)
def update_expense(actor_id: int, expense_id: int, payload: dict) -> Expense:
    expense = _get_or_404(expense_id)
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")
    if patch.get("category") and patch["category"] != expense.category:
        _require_active_category(patch["category"])

    before = {f: getattr(expense, f) for f in AUDITED_FIELDS}
    for k, v in patch.items():
        setattr(expense, k, v)
    db.session.commit()

    changes = audit_service.format_changes(before, {f: getattr(expense, f) for f in AUDITED_FIELDS})
    if changes:
        audit_service.create_audit_log(
            user_id=actor_id,
            action="update",
            module=Module.EXPENSES,
            entity_id=expense.id,
            entity_name=expense.description or expense.category,
            changes=changes,
        )
    return expense


@guarded(Module.EXPENSES, Action.DELETE)
def delete_expense(actor_id: int, expense_id: int) -> None:
    expense = _get_or_404(expense_id)
    snapshot = {"category": expense.category, "amount_cents": expense.amount_cents}
    name = expense.description or expense.category
    db.session.delete(expense)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.EXPENSES,
        entity_id=expense_id,
        entity_name=name,
        changes=audit_service.format_changes(snapshot, {}),
    )


# Categories
#
# Anyone who can read expenses sees the active categories; only
# administrators see inactive ones or change the list.

def _require_admin(actor_id: int) -> None:
    if not permission_service.is_admin(actor_id):
        raise PermissionDeniedError("Only administrators can manage expense categories")


def _category_or_404(category_id: int) -> ExpenseCategory:
    category = db.session.get(ExpenseCategory, category_id)
    if not category:
        raise ExpenseCategoryNotFoundError()
    return category


@guarded(Module.EXPENSES, Action.READ)
def list_categories(actor_id: int, include_inactive: bool = False) -> list[ExpenseCategory]:
    q = db.session.query(ExpenseCategory)
    if not (include_inactive and permission_service.is_admin(actor_id)):
        q = q.filter(ExpenseCategory.is_active.is_(True))
    return q.order_by(ExpenseCategory.name.asc()).all()


@guarded(Module.EXPENSES, Action.CREATE)
def create_category(actor_id: int, payload: dict) -> ExpenseCategory:
    _require_admin(actor_id)
    patch = validate_payload(model=ExpenseCategory, payload=payload, policy=CATEGORY_POLICY, partial=False)
    patch["name"] = patch["name"].lower()

    if db.session.query(ExpenseCategory.id).filter_by(name=patch["name"]).first():
        raise ConflictError("Expense category with this name already exists")

    category = ExpenseCategory(**patch)
    db.session.add(category)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="create",
        module=Module.EXPENSES,
        entity_id=category.id,
        entity_name=f"category:{category.name}",
    )
    return category


@guarded(Module.EXPENSES, Action.UPDATE)
def update_category(actor_id: int, category_id: int, payload: dict) -> ExpenseCategory:
    """Rename or (de)activate a category. Renaming carries existing expenses along."""
    _require_admin(actor_id)
    category = _category_or_404(category_id)
    patch = validate_payload(model=ExpenseCategory, payload=payload, policy=CATEGORY_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")

    if patch.get("name"):
        patch["name"] = patch["name"].lower()
        taken = (
            db.session.query(ExpenseCategory.id)
            .filter(ExpenseCategory.name == patch["name"], ExpenseCategory.id != category.id)
            .first()
        )
        if taken:
            raise ConflictError("Expense category with this name already exists")

    before = {k: getattr(category, k) for k in patch}
    if patch.get("name") and patch["name"] != category.name:
        db.session.query(Expense).filter(Expense.category == category.name).update(
            {"category": patch["name"]}, synchronize_session="fetch"
        )
    for k, v in patch.items():
        setattr(category, k, v)
    db.session.commit()

    changes = audit_service.format_changes(before, patch)
    if changes:
        audit_service.create_audit_log(
            user_id=actor_id,
            action="update",
            module=Module.EXPENSES,
            entity_id=category.id,
            entity_name=f"category:{category.name}",
            changes=changes,
        )
    return category


@guarded(Module.EXPENSES, Action.DELETE)
def delete_category(actor_id: int, category_id: int) -> None:
    """Only unused categories can be deleted; deactivate the others."""
    _require_admin(actor_id)
    category = _category_or_404(category_id)
    if db.session.query(Expense.id).filter(Expense.category == category.name).first():
        raise ConflictError("Expense category is in use; deactivate it instead")

    name = category.name
    db.session.delete(category)
    db.session.commit()

    audit_service.create_audit_log(
        user_id=actor_id,
        action="delete",
        module=Module.EXPENSES,
        entity_id=category_id,
        entity_name=f"category:{name}",
    )


def summarize_expenses(expenses: list[Expense]) -> dict:
    """Totals for a listing: overall and per category."""
    by_category: dict[str, int] = {}
    for e in expenses:
        by_category[e.category] = by_category.get(e.category, 0) + e.amount_cents
    return {
        "count": len(expenses),
        "total_cents": sum(by_category.values()),
        "by_category": by_category,
    }


DEFAULT_EXPENSE_CATEGORIES = ("rent", "supplies", "payroll", "utilities", "other")


def create_default_categories() -> int:
    """Seed the standard categories that are missing. Returns count created."""
    existing = {name for (name,) in db.session.query(ExpenseCategory.name).all()}
    created = 0
    for name in DEFAULT_EXPENSE_CATEGORIES:
        if name not in existing:
            db.session.add(ExpenseCategory(name=name))
            created += 1
    db.session.commit()
    return created
