from __future__ import annotations

from ..extensions import db
from fashionmart.time_utils import to_utc_z


REPORT_TYPE_MONTHLY = "monthly"
REPORT_TYPE_YEARLY = "yearly"

REPORT_TYPES = (REPORT_TYPE_MONTHLY, REPORT_TYPE_YEARLY)


class Report(db.Model):
    """
    Generated admin report. The payload is computed once at generation time
    and stored as JSON; the report id is its reference.
    """
    __tablename__ = "reports"
    __table_args__ = (
        db.Index("ix_reports_type_period", "type", "period_start"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    created_by_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    period_start = db.Column(db.DateTime(timezone=True), nullable=False)
    period_end = db.Column(db.DateTime(timezone=True), nullable=False)
    payload = db.Column(db.JSON, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_by = db.relationship("User")

    def to_dict(self, include_payload: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "createdById": self.created_by_id,
            "periodStart": to_utc_z(self.period_start),
            "periodEnd": to_utc_z(self.period_end),
            "createdAt": to_utc_z(self.created_at),
        }
        if include_payload:
            data["payload"] = self.payload
        return data
