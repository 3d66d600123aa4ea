from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Over-the-counter product sale.

    quantity counts individual items (not packs). Prices are captured at the
    time of sale so later product price changes never rewrite history.

    IMMUTABLE: inserted exactly once by the sale transaction, never updated
    or deleted (enforced by the mapper hooks below).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_sale_date", "sale_date"),
        db.Index("ix_sales_product_date", "product_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)  # quantity * unit price
    profit_cents = db.Column(db.Integer, nullable=False)  # (unit price - cost price) * quantity

    sold_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("sales", lazy="dynamic"))
    sold_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "total_amount_cents": self.total_amount_cents,
            "profit_cents": self.profit_cents,
            "sold_by_user_id": self.sold_by_user_id,
            "sale_date": to_utc_z(self.sale_date),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(Sale, "before_update")
def _reject_sale_update(mapper, connection, target):
    raise ValueError("Sales are immutable once recorded")


@event.listens_for(Sale, "before_delete")
def _reject_sale_delete(mapper, connection, target):
    raise ValueError("Sales are immutable once recorded")
