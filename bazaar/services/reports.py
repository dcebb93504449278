# bazaar/services/reports.py
from __future__ import annotations
import logging
import os
from datetime import datetime

import pandas as pd

from ..extensions import db
from ..model import CommissionRecord, Order

log = logging.getLogger(__name__)

COLUMNS = [
    "Order Number", "Vendor ID", "Vendor", "Buyer ID", "Status", "Payment Status", "Currency",
    "Total", "Escrow Status", "Held", "Released", "Refunded", "Commission", "Seller Net", "Created At",
]


def settlement_frame(start: datetime | None = None, end: datetime | None = None) -> pd.DataFrame:
    """One row per order with its escrow and commission figures."""
    q = Order.query
    if start:
        q = q.filter(Order.created_at >= start)
    if end:
        q = q.filter(Order.created_at < end)
    orders = q.order_by(Order.created_at.asc(), Order.id.asc()).all()

    commissions = {}
    if orders:
        rows = db.session.query(CommissionRecord).filter(
            CommissionRecord.order_id.in_([o.id for o in orders])
        )
        for rec in rows:
            commissions[rec.order_id] = rec

    data = []
    for order in orders:
        escrow = order.escrow
        rec = commissions.get(order.id)
        data.append({
            "Order Number": order.order_number,
            "Vendor ID": order.store_id,
            "Vendor": order.store.name if order.store else None,
            "Buyer ID": order.user_id,
            "Status": order.status,
            "Payment Status": order.payment_status,
            "Currency": order.currency,
            "Total": order.total,
            "Escrow Status": escrow.status if escrow else None,
            "Held": escrow.amount_held if escrow else 0,
            "Released": escrow.amount_released if escrow else 0,
            "Refunded": escrow.amount_refunded if escrow else 0,
            "Commission": rec.amount if rec else 0,
            "Seller Net": rec.net_amount if rec else 0,
            "Created At": order.created_at,
        })
    return pd.DataFrame(data, columns=COLUMNS)


def export_settlements(path: str, start: datetime | None = None, end: datetime | None = None) -> int:
    """Write the settlement frame to ``.csv`` or ``.xlsx``. Returns the row count."""
    df = settlement_frame(start, end)
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        df.to_csv(path, index=False)
    elif ext == ".xlsx":
        df.to_excel(path, index=False)
    else:
        raise ValueError(f"unsupported export format: {ext or path}")
    log.info("exported %d settlement rows to %s", len(df), path)
    return len(df)
