from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ExpenseCategory(db.Model):
    """Admin-managed list of expense categories; names are stored lowercased."""
    __tablename__ = "expense_categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_expense_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    display_name = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name or self.name.capitalize(),
            "is_active": self.is_active,
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_incurred_at", "incurred_at"),
        db.Index("ix_expenses_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Category name, checked against active expense categories on write
    category = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    incurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    description = db.Column(db.Text, nullable=True)
    paid_to = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "incurred_at": to_utc_z(self.incurred_at),
            "description": self.description,
            "paid_to": self.paid_to,
            "payment_method": self.payment_method,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
