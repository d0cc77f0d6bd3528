# Overview: Service-layer operations for reporting; dashboard stats and stored monthly/yearly reports.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import Design, Order, OrderItem, Product, Report, Return, User
from ..models.catalog import DESIGN_STATUSES
from ..models.orders import ORDER_STATUSES, PAYMENT_STATUS_PAID
from ..models.reports import REPORT_TYPE_MONTHLY, REPORT_TYPE_YEARLY, REPORT_TYPES
from ..models.returns import RETURN_STATUSES
from ..money import to_amount
from ..roles import ALL_ROLES
from ..validation import coerce_int, require_json_object
from fashionmart.time_utils import month_range, year_range


MIN_REPORT_YEAR = 2000
MAX_REPORT_YEAR = 2100
TOP_PRODUCTS_LIMIT = 5
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _counts_by(column, keys) -> dict[str, int]:
    rows = db.session.query(column, func.count()).group_by(column).all()
    counts = {key: 0 for key in keys}
    for key, count in rows:
        counts[key] = count
    return counts


def dashboard_stats() -> dict:
    """Computed per request; revenue counts paid orders only (refunds excluded)."""
    users_by_role = _counts_by(User.role, ALL_ROLES)
    orders_by_status = _counts_by(Order.status, ORDER_STATUSES)
    designs_by_status = _counts_by(Design.status, DESIGN_STATUSES)
    revenue_cents = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.payment_status == PAYMENT_STATUS_PAID)
        .scalar()
    )
    return {
        "users": {"total": sum(users_by_role.values()), "byRole": users_by_role},
        "orders": {"total": sum(orders_by_status.values()), "byStatus": orders_by_status},
        "revenue": {"total": to_amount(revenue_cents), "totalCents": revenue_cents},
        "designs": {"total": sum(designs_by_status.values()), "byStatus": designs_by_status},
    }


def _period_payload(start: datetime, end: datetime) -> dict:
    in_period = (Order.created_at >= start, Order.created_at < end)
    paid = (*in_period, Order.payment_status == PAYMENT_STATUS_PAID)

    order_count = db.session.query(func.count(Order.id)).filter(*in_period).scalar()
    paid_count = db.session.query(func.count(Order.id)).filter(*paid).scalar()
    revenue_cents = db.session.query(func.coalesce(func.sum(Order.total_cents), 0)).filter(*paid).scalar()
    items_sold = (
        db.session.query(func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(*paid)
        .scalar()
    )

    units = func.sum(OrderItem.quantity).label("units")
    top_rows = (
        db.session.query(
            Product.id,
            Product.name,
            units,
            func.sum(OrderItem.quantity * OrderItem.unit_price_cents).label("revenue_cents"),
        )
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(*paid)
        .group_by(Product.id, Product.name)
        .order_by(units.desc(), Product.id.asc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )

    new_users = (
        db.session.query(func.count(User.id))
        .filter(User.created_at >= start, User.created_at < end)
        .scalar()
    )
    returns_rows = (
        db.session.query(Return.status, func.count(Return.id))
        .filter(Return.created_at >= start, Return.created_at < end)
        .group_by(Return.status)
        .all()
    )
    returns_by_status = {status: 0 for status in RETURN_STATUSES}
    returns_by_status.update({status: count for status, count in returns_rows})

    designs_approved = (
        db.session.query(func.count(Design.id))
        .filter(Design.approved_at >= start, Design.approved_at < end)
        .scalar()
    )

    orders_by_status = {status: 0 for status in ORDER_STATUSES}
    for status, count in (
        db.session.query(Order.status, func.count(Order.id)).filter(*in_period).group_by(Order.status).all()
    ):
        orders_by_status[status] = count

    return {
        "orders": {"total": order_count, "paid": paid_count, "byStatus": orders_by_status},
        "revenue": {"total": to_amount(revenue_cents), "totalCents": revenue_cents},
        "itemsSold": items_sold,
        "topProducts": [
            {
                "productId": row.id,
                "name": row.name,
                "unitsSold": row.units,
                "revenue": to_amount(row.revenue_cents),
            }
            for row in top_rows
        ],
        "newUsers": new_users,
        "returns": {"total": sum(returns_by_status.values()), "byStatus": returns_by_status},
        "designsApproved": designs_approved,
    }


def _parse_year(payload: dict) -> int:
    if payload.get("year") in (None, ""):
        raise ValidationError("year is required")
    year = coerce_int(payload["year"], "year")
    if not MIN_REPORT_YEAR <= year <= MAX_REPORT_YEAR:
        raise ValidationError(f"year must be between {MIN_REPORT_YEAR} and {MAX_REPORT_YEAR}")
    return year


def generate_monthly_report(admin: User, payload: dict) -> Report:
    payload = require_json_object(payload)
    year = _parse_year(payload)
    if payload.get("month") in (None, ""):
        raise ValidationError("month is required")
    month = coerce_int(payload["month"], "month")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")

    start, end = month_range(year, month)
    return _store_report(admin, REPORT_TYPE_MONTHLY, f"{MONTH_NAMES[month - 1]} {year} Report", start, end)


def generate_yearly_report(admin: User, payload: dict) -> Report:
    year = _parse_year(require_json_object(payload))
    start, end = year_range(year)
    return _store_report(admin, REPORT_TYPE_YEARLY, f"{year} Annual Report", start, end)


def _store_report(admin: User, type_: str, title: str, start: datetime, end: datetime) -> Report:
    report = Report(
        created_by_id=admin.id,
        type=type_,
        title=title,
        period_start=start,
        period_end=end,
        payload=_period_payload(start, end),
    )
    db.session.add(report)
    db.session.commit()
    current_app.logger.info("Report %s (%s) generated by %s", report.id, title, admin.id)
    return report


def list_reports(*, type_: str | None = None, page: int = 1, limit: int = 20) -> tuple[list[Report], int]:
    query = db.session.query(Report)
    if type_:
        if type_ not in REPORT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(REPORT_TYPES)}")
        query = query.filter(Report.type == type_)
    total = query.count()
    reports = (
        query.order_by(Report.created_at.desc(), Report.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return reports, total


def get_report(report_id: int) -> Report:
    report = db.session.get(Report, report_id)
    if not report:
        raise NotFound("Report not found")
    return report
