from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Sellable product stocked in packs.

    stock_quantity counts packs; quantity_per_pack is the number of individual
    sellable items in one pack. Prices are per single item, in minor units.

    INVARIANT: stock_quantity >= 0 after any sale (CHECK constraint).
    Stock only changes inside the sale transaction or product CRUD, both of
    which go through the permission/lock gate.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("quantity_per_pack >= 1", name="ck_products_pack_size_positive"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=True)  # gallon, kg, pcs, box, pack, ...

    # Selling price per single item
    price_cents = db.Column(db.Integer, nullable=False)
    # Cost per single item; null when unknown
    cost_price_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    quantity_per_pack = db.Column(db.Integer, nullable=False, default=1)
    reorder_level = db.Column(db.Integer, nullable=True, default=10)
    image = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sku": self.sku,
            "category": self.category,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock_quantity": self.stock_quantity,
            "quantity_per_pack": self.quantity_per_pack,
            "reorder_level": self.reorder_level,
            "image": self.image,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryItem(db.Model):
    """Consumable clinic supplies (not sold over the counter)."""
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_inventory_items_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=True, default=10)
    image = db.Column(db.Text, nullable=True)

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
            "description": self.description,
            "sku": self.sku,
            "category": self.category,
            "unit": self.unit,
            "stock_quantity": self.stock_quantity,
            "reorder_level": self.reorder_level,
            "image": self.image,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
