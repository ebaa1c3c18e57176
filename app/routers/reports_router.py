from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import Date, DateTime, bindparam, text
from datetime import date, datetime, time, timedelta
from typing import Optional

from app.core.security import Caller, require_admin
from app.utils.database import get_db
from app.utils.emi_calculations import add_months
from app.utils.money import to_rupees

router = APIRouter(prefix="/reports", tags=["Reports"])


def _emi_row(r) -> dict:
    return {
        "customer_id": r["customer_id"],
        "customer_name": r["customer_name"],
        "mobile": r["mobile"],
        "imei": r["imei"],
        "retailer_id": r["retailer_id"],
        "retailer_name": r["retailer_name"],
        "emi_id": r["emi_id"],
        "emi_no": r["emi_no"],
        "due_date": r["due_date"],
        "amount": to_rupees(r["amount"]),
        "fine_amount": to_rupees(r["fine_amount"]),
        "status": r["status"],
    }


_EMI_SELECT = """
             select c.customer_id,
                    c.customer_name,
                    c.mobile,
                    c.imei,
                    c.retailer_id,
                    rt.name as retailer_name,
                    e.emi_id,
                    e.emi_no,
                    e.due_date,
                    e.amount,
                    e.fine_amount,
                    e.status
             from emi_schedule e
                      join customers c on c.customer_id = e.customer_id
                      join retailers rt on rt.retailer_id = c.retailer_id
"""


@router.get("/upcoming")
def upcoming_emis(
        days: int = Query(30, ge=1, le=365),
        as_on: Optional[date] = None,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    as_on = as_on or date.today()
    rows = db.execute(
        text(_EMI_SELECT + """
             where e.status = 'UNPAID'
               and c.status = 'RUNNING'
               and e.due_date >= :as_on
               and e.due_date <= :until
             order by e.due_date asc, c.customer_name asc
             """).bindparams(bindparam("as_on", type_=Date), bindparam("until", type_=Date)),
        {"as_on": as_on, "until": as_on + timedelta(days=days)},
    ).mappings().all()

    return [_emi_row(r) for r in rows]


@router.get("/overdue")
def overdue_emis(
        months: int = Query(1, ge=0, le=60),
        as_on: Optional[date] = None,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    as_on = as_on or date.today()
    cutoff = add_months(as_on, -months, min(as_on.day, 28)) if months else as_on
    rows = db.execute(
        text(_EMI_SELECT + """
             where e.status = 'UNPAID'
               and c.status = 'RUNNING'
               and e.due_date < :cutoff
             order by e.due_date asc
             """).bindparams(bindparam("cutoff", type_=Date)),
        {"cutoff": cutoff},
    ).mappings().all()

    return [_emi_row(r) for r in rows]


@router.get("/fines")
def outstanding_fines(
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    rows = db.execute(
        text(_EMI_SELECT + """
             where e.status <> 'APPROVED'
               and e.fine_amount > 0
               and e.fine_waived = :not_waived
             order by e.fine_amount desc, e.due_date asc
             """),
        {"not_waived": False},
    ).mappings().all()

    return [_emi_row(r) for r in rows]


@router.get("/collections")
def collections_by_retailer(
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        caller: Caller = Depends(require_admin),
        db: Session = Depends(get_db),
):
    """Approved payment requests summed per retailer (optionally within approval dates)."""
    sql = """
             select rt.retailer_id,
                    rt.name                                 as retailer_name,
                    count(p.request_id)                     as requests,
                    coalesce(sum(p.total_emi_amount), 0)        as emi_collected,
                    coalesce(sum(p.fine_amount), 0)             as fine_collected,
                    coalesce(sum(p.first_emi_charge_amount), 0) as first_charge_collected,
                    coalesce(sum(p.total_amount), 0)            as total_collected
             from payment_requests p
                      join retailers rt on rt.retailer_id = p.retailer_id
             where p.status = 'APPROVED'
    """
    params, binds = {}, []
    if date_from:
        sql += " and p.approved_at >= :date_from"
        params["date_from"] = datetime.combine(date_from, time.min)
        binds.append(bindparam("date_from", type_=DateTime))
    if date_to:
        sql += " and p.approved_at < :date_to"
        params["date_to"] = datetime.combine(date_to + timedelta(days=1), time.min)
        binds.append(bindparam("date_to", type_=DateTime))
    sql += " group by rt.retailer_id, rt.name order by total_collected desc"

    rows = db.execute(text(sql).bindparams(*binds), params).mappings().all()

    return [
        {
            "retailer_id": r["retailer_id"],
            "retailer_name": r["retailer_name"],
            "requests": int(r["requests"]),
            "emi_collected": to_rupees(r["emi_collected"]),
            "fine_collected": to_rupees(r["fine_collected"]),
            "first_emi_charge_collected": to_rupees(r["first_charge_collected"]),
            "total_collected": to_rupees(r["total_collected"]),
        }
        for r in rows
    ]
