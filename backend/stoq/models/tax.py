from __future__ import annotations

from ..extensions import db
from stoq.time_utils import to_iso_date


class TaxRate(db.Model):
    """
    Sales tax rate by location.

    A row with city NULL is the state/province-level rate. Multiple rows for
    the same location are kept for history; the latest effective_date wins.
    """
    __tablename__ = "tax_rates"
    __table_args__ = (
        db.Index("ix_tax_rates_location", "country", "state_province", "city"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    country = db.Column(db.String(64), nullable=False)
    state_province = db.Column(db.String(128), nullable=False)
    city = db.Column(db.String(128), nullable=True)

    # Basis points (1300 = 13%)
    rate_bps = db.Column(db.Integer, nullable=False)
    tax_type = db.Column(db.String(32), nullable=True)  # HST, GST, PST, Sales Tax

    effective_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "country": self.country,
            "state_province": self.state_province,
            "city": self.city,
            "rate_bps": self.rate_bps,
            "tax_type": self.tax_type,
            "effective_date": to_iso_date(self.effective_date),
        }
