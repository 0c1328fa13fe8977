# Overview: Line Item Store for estimates and invoices; every mutation re-runs the Totals Aggregator.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func

from ..extensions import db
from ..models import Estimate, EstimateItem, Invoice, InvoiceItem
from ..validation import MAX_MONEY, NotFoundError, ValidationError, coerce_decimal
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import scoped_query
from .totals_service import recalculate_totals

DEFAULT_UNIT = "each"
DEFAULT_QUANTITY = Decimal("1")
# NUMERIC(10, 2)
MAX_QUANTITY = Decimal("99999999.99")
MAX_UNIT_LENGTH = 50
ITEM_FIELDS = {"description", "quantity", "unit", "unit_price", "sort_order"}


@dataclass(frozen=True)
class ItemKind:
    document_model: type
    item_model: type
    parent_key: str


ESTIMATE_ITEMS = ItemKind(Estimate, EstimateItem, "estimate_id")
INVOICE_ITEMS = ItemKind(Invoice, InvoiceItem, "invoice_id")

KINDS = {
    "estimate": ESTIMATE_ITEMS,
    "invoice": INVOICE_ITEMS,
}


def _kind(kind: str | ItemKind) -> ItemKind:
    if isinstance(kind, ItemKind):
        return kind
    try:
        return KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown line item kind: {kind}")


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def normalize_item(data: dict, *, position: int | None = None, partial: bool = False) -> dict:
    """
    Validate one line item payload.

    Quantity and unit price are stored with two decimals, so they are
    rounded here; the per-line amount is their exact product.
    """
    if not isinstance(data, dict):
        raise ValidationError("Each line item must be an object")

    label = f"items[{position}]" if position is not None else "item"
    unknown = set(data) - ITEM_FIELDS - {"id", "amount"}
    if unknown:
        raise ValidationError(f"{label}: unknown field(s) {', '.join(sorted(unknown))}")

    item: dict = {}

    if not partial or "description" in data:
        description = data.get("description")
        description = str(description).strip() if description is not None else ""
        if not description:
            raise ValidationError(f"{label}: description is required")
        item["description"] = description

    if not partial or "quantity" in data:
        raw = data.get("quantity")
        quantity = DEFAULT_QUANTITY if raw is None or raw == "" else coerce_decimal(raw, f"{label}.quantity")
        if quantity < 0:
            raise ValidationError(f"{label}: quantity must be >= 0")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"{label}: quantity cannot exceed {MAX_QUANTITY}")
        item["quantity"] = _quantize(quantity)

    if not partial or "unit" in data:
        unit = data.get("unit")
        unit = str(unit).strip() if unit is not None else ""
        if len(unit) > MAX_UNIT_LENGTH:
            raise ValidationError(f"{label}: unit exceeds max length {MAX_UNIT_LENGTH}")
        item["unit"] = unit or DEFAULT_UNIT

    if not partial or "unit_price" in data:
        raw = data.get("unit_price")
        price = Decimal(0) if raw is None or raw == "" else coerce_decimal(raw, f"{label}.unit_price")
        if price < 0:
            raise ValidationError(f"{label}: unit_price must be >= 0")
        if price > MAX_MONEY:
            raise ValidationError(f"{label}: unit_price cannot exceed {MAX_MONEY}")
        item["unit_price"] = _quantize(price)

    if "sort_order" in data and data["sort_order"] is not None:
        sort_order = data["sort_order"]
        if isinstance(sort_order, bool) or not isinstance(sort_order, int):
            raise ValidationError(f"{label}: sort_order must be an integer")
        item["sort_order"] = sort_order

    return item


def normalize_items(items, *, require_one: bool = True) -> list[dict]:
    """
    Validate a full replacement item set.

    sort_order is the position in the submitted list, which is what the
    edit forms send.
    """
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    if require_one and not items:
        raise ValidationError("At least one line item is required")

    normalized = []
    for index, data in enumerate(items):
        item = normalize_item(data, position=index)
        item["sort_order"] = index
        normalized.append(item)
    return normalized


def replace_items(document, items: list[dict]):
    """
    Replace a document's entire line-item set and recompute its totals.

    Old rows are deleted through the delete-orphan cascade and new rows are
    inserted with fresh ids. Nothing is committed here: the caller writes the
    parent row, items and totals in one transaction.
    """
    kind = ESTIMATE_ITEMS if isinstance(document, Estimate) else INVOICE_ITEMS
    document.items.clear()
    for data in items:
        document.items.append(kind.item_model(**data))
    recalculate_totals(document)
    return document.items


def copy_items(source_items, item_model) -> list:
    """Field-for-field copies (new ids) used when converting documents."""
    return [
        item_model(
            description=item.description,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=item.unit_price,
            sort_order=item.sort_order,
        )
        for item in source_items
    ]


def _locked_document(kind: ItemKind, org_id: int, document_id: int):
    model = kind.document_model
    document = lock_for_update(scoped_query(model, org_id).filter(model.id == document_id)).first()
    if document is None:
        raise NotFoundError(f"{model.__name__} not found")
    return document


def _find_item(document, item_id: int):
    for item in document.items:
        if item.id == item_id:
            return item
    raise NotFoundError("Line item not found")


def add_item(org_id: int, kind: str | ItemKind, document_id: int, data: dict):
    """Append one item after the current last one."""
    kind = _kind(kind)
    item_data = normalize_item(data)

    def _op():
        document = _locked_document(kind, org_id, document_id)
        if "sort_order" not in item_data:
            current_max = (
                db.session.query(func.max(kind.item_model.sort_order))
                .filter(getattr(kind.item_model, kind.parent_key) == document.id)
                .scalar()
            )
            item_data["sort_order"] = 0 if current_max is None else current_max + 1

        item = kind.item_model(**item_data)
        document.items.append(item)
        recalculate_totals(document)
        db.session.commit()
        return item

    return run_with_retry(_op)


def update_item(org_id: int, kind: str | ItemKind, document_id: int, item_id: int, data: dict):
    """Patch one item; unspecified fields keep their values."""
    kind = _kind(kind)
    patch = normalize_item(data, partial=True)

    def _op():
        document = _locked_document(kind, org_id, document_id)
        item = _find_item(document, item_id)
        for key, value in patch.items():
            setattr(item, key, value)
        recalculate_totals(document)
        db.session.commit()
        return item

    return run_with_retry(_op)


def remove_item(org_id: int, kind: str | ItemKind, document_id: int, item_id: int):
    """Delete one item. Remaining items keep their sort_order."""
    kind = _kind(kind)

    def _op():
        document = _locked_document(kind, org_id, document_id)
        item = _find_item(document, item_id)
        document.items.remove(item)
        recalculate_totals(document)
        db.session.commit()
        return document

    return run_with_retry(_op)


def list_items(org_id: int, kind: str | ItemKind, document_id: int) -> list:
    kind = _kind(kind)
    model = kind.document_model
    document = scoped_query(model, org_id).filter(model.id == document_id).first()
    if document is None:
        raise NotFoundError(f"{model.__name__} not found")
    return list(document.items)
