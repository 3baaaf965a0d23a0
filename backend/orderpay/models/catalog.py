from __future__ import annotations

from ..extensions import db


class Product(db.Model):
    """
    Local mirror of the external product catalog.

    WHY: Used as the price/existence oracle for orders and as the
    foreign-key target of order details. Rows are written only by
    catalog sync (upsert keyed by the external product id, e.g. a JAN/EAN
    barcode); name and price are overwritten on every sync.
    """
    __tablename__ = "products"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    # Price in the smallest currency unit
    price = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
