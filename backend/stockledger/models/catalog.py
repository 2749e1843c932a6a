from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_day


def normalize_code(value) -> str:
    return (value or "").strip().lower()


def normalize_batch(value) -> str:
    # empty and absent batch are the same key
    return (value or "").strip().lower()


class Product(db.Model):
    """
    Catalog row: one item code + batch.

    KEY DESIGN DECISION:
    (item_code, batch) is looked up case-insensitively with empty/absent batch
    treated identically. code_key / batch_key hold the normalized forms and
    carry a unique constraint, so the key identifies at most one row.

    ALIASES:
    product_code, product_name and selling_price exist for older callers.
    They are always derived from item_code, item_name and selling_price_tab
    in stock_service.apply_product_patch(); never written from input.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code_key", "batch_key", name="uq_products_code_batch"),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_expiry_date", "expiry_date"),
        db.Index("ix_products_item_name", "item_name"),
        db.Index("ix_products_stock_quantity", "stock_quantity"),
    )

    id = db.Column(db.String(64), primary_key=True)

    # Identification
    item_code = db.Column(db.String(64), nullable=False)
    item_name = db.Column(db.String(255), nullable=False)
    regional_name = db.Column(db.String(255), nullable=True)
    short_key = db.Column(db.String(64), nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    # Normalized lookup key
    code_key = db.Column(db.String(64), nullable=False)
    batch_key = db.Column(db.String(64), nullable=False, default="")

    # Classification
    hsn_code = db.Column(db.String(32), nullable=False, default="")
    batch = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(128), nullable=False, default="")
    manufacturer = db.Column(db.String(255), nullable=True, index=True)
    brand = db.Column(db.String(255), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    unit = db.Column(db.String(32), nullable=True)
    alt_unit = db.Column(db.String(32), nullable=True)
    pack = db.Column(db.String(32), nullable=False, default="1")
    description = db.Column(db.Text, nullable=True)

    # Pricing
    purchase_price = db.Column(db.Float, nullable=False, default=0)
    selling_price_tab = db.Column(db.Float, nullable=False, default=0)
    mrp = db.Column(db.Float, nullable=False, default=0)

    # Stock
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    rol = db.Column(db.Float, nullable=False, default=0)
    min_stock_level = db.Column(db.Float, nullable=False, default=0)
    max_stock_level = db.Column(db.Float, nullable=False, default=0)

    # Tax
    cgst_rate = db.Column(db.Float, nullable=False, default=0)
    sgst_rate = db.Column(db.Float, nullable=False, default=0)
    igst_rate = db.Column(db.Float, nullable=False, default=0)
    pr_tax_included = db.Column(db.Boolean, nullable=False, default=False)
    sl_tax_included = db.Column(db.Boolean, nullable=False, default=False)

    # Expiry
    has_expiry_date = db.Column(db.Boolean, nullable=False, default=False)
    expiry_date = db.Column(db.Date, nullable=True)

    # Derived aliases
    product_code = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)
    selling_price = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.item_code!r} batch={self.batch!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "itemCode": self.item_code,
            "itemName": self.item_name,
            "regionalName": self.regional_name,
            "hsnCode": self.hsn_code,
            "batch": self.batch,
            "category": self.category,
            "manufacturer": self.manufacturer,
            "rol": self.rol,
            "altUnit": self.alt_unit,
            "pack": self.pack,
            "purchasePrice": self.purchase_price,
            "sellingPriceTab": self.selling_price_tab,
            "mrp": self.mrp,
            "stockQuantity": self.stock_quantity,
            "minStockLevel": self.min_stock_level,
            "maxStockLevel": self.max_stock_level,
            "cgstRate": self.cgst_rate,
            "sgstRate": self.sgst_rate,
            "igstRate": self.igst_rate,
            "prTaxIncluded": self.pr_tax_included,
            "slTaxIncluded": self.sl_tax_included,
            "hasExpiryDate": self.has_expiry_date,
            "expiryDate": to_iso_day(self.expiry_date),
            "productCode": self.product_code,
            "productName": self.product_name,
            "shortKey": self.short_key,
            "brand": self.brand,
            "unit": self.unit,
            "sellingPrice": self.selling_price,
            "supplier": self.supplier,
            "barcode": self.barcode,
            "description": self.description,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


# External (camelCase) field name -> Product attribute.
# Aliases and timestamps are deliberately absent: they are never taken from input.
PRODUCT_FIELDS = {
    "itemCode": "item_code",
    "itemName": "item_name",
    "regionalName": "regional_name",
    "hsnCode": "hsn_code",
    "batch": "batch",
    "category": "category",
    "manufacturer": "manufacturer",
    "rol": "rol",
    "altUnit": "alt_unit",
    "pack": "pack",
    "purchasePrice": "purchase_price",
    "sellingPriceTab": "selling_price_tab",
    "mrp": "mrp",
    "stockQuantity": "stock_quantity",
    "minStockLevel": "min_stock_level",
    "maxStockLevel": "max_stock_level",
    "cgstRate": "cgst_rate",
    "sgstRate": "sgst_rate",
    "igstRate": "igst_rate",
    "prTaxIncluded": "pr_tax_included",
    "slTaxIncluded": "sl_tax_included",
    "hasExpiryDate": "has_expiry_date",
    "expiryDate": "expiry_date",
    "shortKey": "short_key",
    "brand": "brand",
    "unit": "unit",
    "supplier": "supplier",
    "barcode": "barcode",
    "description": "description",
}

# Text columns covered by catalog search
SEARCH_COLUMNS = (
    Product.item_code,
    Product.item_name,
    Product.regional_name,
    Product.short_key,
    Product.barcode,
    Product.batch,
    Product.hsn_code,
)
