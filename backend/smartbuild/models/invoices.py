from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..extensions import db
from smartbuild.money import ZERO, decimal_str, money_str
from smartbuild.time_utils import to_iso_date, to_utc_z, today


class Invoice(db.Model):
    """
    Invoice billed to a client, entered directly or converted from an estimate.

    STATUS: unpaid <-> paid, toggled freely. paid_date is set exactly when
    status is paid. "Overdue" is derived on read and never stored.

    source_estimate_id is only written by conversion_service. Several
    invoices may point at the same estimate.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_number", name="uq_invoices_org_number"),
        db.Index("ix_invoices_org_status", "org_id", "status"),
        db.Index("ix_invoices_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    source_estimate_id = db.Column(db.Integer, db.ForeignKey("estimates.id", ondelete="SET NULL"), nullable=True, index=True)

    # Human-readable number (e.g., "INV-482913"), unique per organization
    invoice_number = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)

    issue_date = db.Column(db.Date, nullable=False, default=today)
    due_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.Date, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=ZERO)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    notes = db.Column(db.Text, nullable=True)
    job_site_address = db.Column(db.Text, nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("invoices", lazy=True))
    client = db.relationship("Client", backref=db.backref("invoices", lazy=True))
    source_estimate = db.relationship("Estimate", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.sort_order",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def is_overdue(self, as_of: date | None = None) -> bool:
        as_of = as_of or today()
        return self.status == "unpaid" and self.due_date is not None and self.due_date < as_of

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "client_id": self.client_id,
            "client": self.client.to_summary() if self.client else None,
            "source_estimate_id": self.source_estimate_id,
            "invoice_number": self.invoice_number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "paid_date": to_iso_date(self.paid_date),
            "overdue": self.is_overdue(),
            "subtotal": money_str(self.subtotal),
            "tax_rate": money_str(self.tax_rate),
            "tax_amount": money_str(self.tax_amount),
            "total": money_str(self.total),
            "notes": self.notes,
            "job_site_address": self.job_site_address,
            "archived_at": to_utc_z(self.archived_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """Billable row on an invoice. amount is always quantity * unit_price."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.Index("ix_invoice_items_invoice_sort", "invoice_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("1"))
    unit = db.Column(db.String(50), nullable=False, default="each")
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", back_populates="items")

    @property
    def amount(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.unit_price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "description": self.description,
            "quantity": decimal_str(self.quantity),
            "unit": self.unit,
            "unit_price": money_str(self.unit_price),
            "amount": decimal_str(self.amount),
            "sort_order": self.sort_order,
        }
