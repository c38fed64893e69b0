"""Random demo data: vendors, line items, purchase orders and invoices."""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional

from .schemas import LineItem
from .status import InvoiceStatus, POStatus
from .utils import round_money

VENDORS = [
    "Acme Supplies Co.",
    "Global Parts Inc.",
    "Tech Components Ltd.",
    "Office Essentials",
    "Industrial Materials Corp.",
    "Quick Ship Logistics",
    "Premium Goods LLC",
    "Eastern Distributors",
]

PRODUCT_CATEGORIES = {
    "Office Supplies": ["Paper Reams", "Printer Ink", "Staplers", "Folders", "Pens (Box)"],
    "Electronics": ["USB Cables", "Monitors", "Keyboards", "Mice", "Webcams"],
    "Industrial": ["Safety Gloves", "Hard Hats", "Steel Bolts", "Lubricant", "Wire Spools"],
    "Furniture": ["Office Chairs", "Desks", "Filing Cabinets", "Shelving Units", "Lamps"],
}


def _rng(rng: Optional[random.Random]) -> random.Random:
    return rng or random.Random()


def generate_line_items(
    count: Optional[int] = None,
    rng: Optional[random.Random] = None,
    max_quantity: int = 50,
    price_range: tuple = (5.0, 205.0),
) -> List[LineItem]:
    rng = _rng(rng)
    items = []
    for _ in range(count if count is not None else rng.randint(1, 5)):
        category = rng.choice(sorted(PRODUCT_CATEGORIES))
        items.append(
            LineItem(
                name=rng.choice(PRODUCT_CATEGORIES[category]),
                quantity=rng.randint(1, max_quantity),
                unit_price=round_money(rng.uniform(*price_range)),
            )
        )
    return items


def generate_purchase_order(rng: Optional[random.Random] = None) -> Dict[str, Any]:
    rng = _rng(rng)
    items = generate_line_items(rng=rng)
    return {
        "vendor": rng.choice(VENDORS),
        "items": items,
        "status": POStatus.PENDING,
    }


def generate_invoice(linked_po_id: Optional[str] = None, rng: Optional[random.Random] = None) -> Dict[str, Any]:
    rng = _rng(rng)
    items = generate_line_items(rng=rng)
    return {
        "vendor": rng.choice(VENDORS),
        "line_items": items,
        "status": InvoiceStatus.PROCESSED if linked_po_id else InvoiceStatus.UNPROCESSED,
        "linked_po_id": linked_po_id,
    }
