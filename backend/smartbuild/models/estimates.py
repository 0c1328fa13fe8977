from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from smartbuild.money import ZERO, decimal_str, money_str
from smartbuild.time_utils import to_iso_date, to_utc_z, today


class Estimate(db.Model):
    """
    Project estimate (quote) for a client.

    STATUS: draft -> sent -> approved / declined. Manual overrides in any
    direction are allowed; see lifecycle_service.

    TOTALS: subtotal, tax_amount and total are derived from the line items
    and tax_rate by totals_service. They are never written by callers.

    ARCHIVE: archived_at is independent of status. Archived estimates are
    hidden from default listings but stay addressable by id.
    """
    __tablename__ = "estimates"
    __table_args__ = (
        db.UniqueConstraint("org_id", "estimate_number", name="uq_estimates_org_number"),
        db.Index("ix_estimates_org_status", "org_id", "status"),
        db.Index("ix_estimates_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)

    # Human-readable number (e.g., "EST-482913"), unique per organization
    estimate_number = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    issue_date = db.Column(db.Date, nullable=False, default=today)
    valid_until = db.Column(db.Date, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=ZERO)  # Percentage (e.g., 8.25)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=ZERO)

    notes = db.Column(db.Text, nullable=True)
    job_site_address = db.Column(db.Text, nullable=True)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("estimates", lazy=True))
    client = db.relationship("Client", backref=db.backref("estimates", lazy=True))
    items = db.relationship(
        "EstimateItem",
        back_populates="estimate",
        order_by="EstimateItem.sort_order",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Estimate id={self.id} number={self.estimate_number!r} status={self.status}>"

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "client_id": self.client_id,
            "client": self.client.to_summary() if self.client else None,
            "estimate_number": self.estimate_number,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "issue_date": to_iso_date(self.issue_date),
            "valid_until": to_iso_date(self.valid_until),
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


class EstimateItem(db.Model):
    """Billable row on an estimate. amount is always quantity * unit_price."""
    __tablename__ = "estimate_items"
    __table_args__ = (
        db.Index("ix_estimate_items_estimate_sort", "estimate_id", "sort_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    estimate_id = db.Column(db.Integer, db.ForeignKey("estimates.id", ondelete="CASCADE"), nullable=False, index=True)

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("1"))
    unit = db.Column(db.String(50), nullable=False, default="each")  # each, sqft, hour, ...
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    estimate = db.relationship("Estimate", back_populates="items")

    @property
    def amount(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.unit_price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "estimate_id": self.estimate_id,
            "description": self.description,
            "quantity": decimal_str(self.quantity),
            "unit": self.unit,
            "unit_price": money_str(self.unit_price),
            "amount": decimal_str(self.amount),
            "sort_order": self.sort_order,
        }
