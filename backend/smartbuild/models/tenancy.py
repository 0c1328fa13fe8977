from __future__ import annotations

from ..extensions import db
from smartbuild.time_utils import to_utc_z


class Organization(db.Model):
    """
    Multi-tenant root: every contractor business is an Organization.

    All clients, estimates and invoices belong to exactly one organization
    via org_id, and no data may cross organization boundaries. Services take
    org_id explicitly and filter every query by it.

    The business_* fields are the contractor's profile as shown to clients
    (sender name and contact details on outgoing estimate email).
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    business_name = db.Column(db.String(255), nullable=True)
    business_email = db.Column(db.String(255), nullable=True)
    business_phone = db.Column(db.String(50), nullable=True)
    business_address = db.Column(db.Text, nullable=True)
    license_number = db.Column(db.String(100), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    @property
    def display_name(self) -> str:
        return self.business_name or "Your Business"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "business_name": self.business_name,
            "business_email": self.business_email,
            "business_phone": self.business_phone,
            "business_address": self.business_address,
            "license_number": self.license_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
