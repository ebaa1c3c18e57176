from datetime import date

import pytest

from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from app.models.audit_log_model import AuditLog
from app.models.customer_model import Customer
from app.models.emi_schedule_model import EMISchedule
from app.models.payment_request_model import PaymentRequest, PaymentRequestItem
from app.schemas.customer_schema import CustomerUpdate
from app.services import payment_requests as svc
from app.services.customers import complete_customer, update_customer

from tests.factories import ADMIN, emis_of, make_customer, make_retailer, retailer_caller

TODAY = date(2025, 2, 10)  # EMI #1 (due 2025-02-05) is overdue


@pytest.fixture()
def setup(db):
    retailer = make_retailer(db)
    customer = make_customer(db, retailer)
    return retailer, customer, emis_of(db, customer.customer_id)


def _submit(db, retailer, customer, emi_ids, **kw):
    kw.setdefault("mode", "CASH")
    kw.setdefault("retail_pin", "1234")
    kw.setdefault("today", TODAY)
    return svc.submit_payment_request(
        db, retailer_caller(retailer), customer_id=customer.customer_id, emi_ids=emi_ids, **kw
    )


# ----------------------------
# Submit
# ----------------------------
def test_submit_creates_pending_request_with_server_amounts(db, setup):
    retailer, customer, emis = setup

    req = _submit(db, retailer, customer, [emis[0].emi_id])

    assert req.status == "PENDING"
    assert req.total_emi_amount == 100000
    assert req.first_emi_charge_amount == 20000
    assert req.fine_amount == 0
    assert req.total_amount == 120000
    assert req.selected_emi_nos == [1]
    assert [i.emi_id for i in req.items] == [emis[0].emi_id]
    assert emis_of(db, customer.customer_id)[0].status == "PENDING_APPROVAL"


def test_submit_with_wrong_pin_writes_nothing(db, setup):
    retailer, customer, emis = setup

    with pytest.raises(ForbiddenError, match="Incorrect Retailer PIN"):
        _submit(db, retailer, customer, [emis[0].emi_id], retail_pin="9999")

    assert db.query(PaymentRequest).count() == 0
    assert emis_of(db, customer.customer_id)[0].status == "UNPAID"


def test_submit_pin_is_compared_exactly(db, setup):
    retailer, customer, emis = setup

    with pytest.raises(ForbiddenError):
        _submit(db, retailer, customer, [emis[0].emi_id], retail_pin=" 1234")


def test_submit_requires_pin_and_fields(db, setup):
    retailer, customer, emis = setup

    with pytest.raises(ValidationError, match="Retailer PIN is required"):
        _submit(db, retailer, customer, [emis[0].emi_id], retail_pin="")
    with pytest.raises(ValidationError, match="Missing required fields"):
        _submit(db, retailer, customer, [])
    with pytest.raises(ValidationError, match="Missing required fields"):
        _submit(db, retailer, customer, [emis[0].emi_id], mode=None)


def test_inactive_retailer_cannot_submit(db, setup):
    retailer, customer, emis = setup
    retailer.is_active = False
    db.commit()

    with pytest.raises(ForbiddenError, match="inactive"):
        _submit(db, retailer, customer, [emis[0].emi_id])


def test_retailer_cannot_submit_for_someone_elses_customer(db, setup):
    _, customer, emis = setup
    other = make_retailer(db, n=2, pin="5555")

    with pytest.raises(ForbiddenError):
        _submit(db, other, customer, [emis[0].emi_id], retail_pin="5555")
    assert db.query(PaymentRequest).count() == 0


def test_second_submit_on_same_emi_conflicts(db, setup):
    retailer, customer, emis = setup
    _submit(db, retailer, customer, [emis[0].emi_id])

    with pytest.raises(ConflictError):
        _submit(db, retailer, customer, [emis[0].emi_id])

    assert db.query(PaymentRequest).count() == 1
    assert db.query(PaymentRequestItem).count() == 1


def test_submit_includes_stored_fine_once_overdue(db, setup):
    retailer, customer, emis = setup
    emis[0].fine_amount = 45000
    db.commit()

    req = _submit(db, retailer, customer, [emis[0].emi_id])

    assert req.fine_amount == 45000
    assert req.total_amount == 165000


def test_client_amounts_are_reconciled(db, setup):
    retailer, customer, emis = setup

    with pytest.raises(ValidationError, match="Amount mismatch for total_amount"):
        _submit(db, retailer, customer, [emis[0].emi_id], amounts={"total_amount": 100000})
    assert emis_of(db, customer.customer_id)[0].status == "UNPAID"

    # within tolerance: accepted, stored amount is the server's
    req = _submit(db, retailer, customer, [emis[0].emi_id], amounts={"total_amount": 120050})
    assert req.total_amount == 120000


def test_multi_emi_submit(db, setup):
    retailer, customer, emis = setup

    req = _submit(db, retailer, customer, [emis[0].emi_id, emis[1].emi_id])

    assert req.total_emi_amount == 200000
    assert req.total_amount == 220000
    assert sorted(i.emi_no for i in req.items) == [1, 2]
    statuses = [e.status for e in emis_of(db, customer.customer_id)]
    assert statuses[:3] == ["PENDING_APPROVAL", "PENDING_APPROVAL", "UNPAID"]


def test_first_charge_not_asked_twice_while_in_flight(db, setup):
    retailer, customer, emis = setup
    _submit(db, retailer, customer, [emis[0].emi_id])

    second = _submit(db, retailer, customer, [emis[1].emi_id])

    assert second.first_emi_charge_amount == 0
    assert second.total_amount == 100000


def test_complete_customer_cannot_be_paid(db, setup):
    retailer, customer, emis = setup
    complete_customer(db, ADMIN, customer.customer_id, "Settled early")

    with pytest.raises(InvalidStateError):
        _submit(db, retailer, customer, [emis[0].emi_id])


# ----------------------------
# Approve / reject
# ----------------------------
def test_approve_credits_rows_and_stamps_first_charge(db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])

    out = svc.approve_payment_request(db, ADMIN, req.request_id, remark="cash counted")

    assert out.status == "APPROVED"
    assert out.approved_by == ADMIN.caller_id
    assert "Remark: cash counted" in out.notes

    row = emis_of(db, customer.customer_id)[0]
    assert row.status == "APPROVED"
    assert row.paid_at is not None
    assert row.mode == "CASH"
    assert row.approved_by == ADMIN.caller_id
    assert row.collected_by_role == "retailer"

    db.expire_all()
    assert db.get(Customer, customer.customer_id).first_emi_charge_paid_at is not None


def test_approve_twice_applies_once(db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])
    svc.approve_payment_request(db, ADMIN, req.request_id)

    with pytest.raises(InvalidStateError, match="Request is not pending"):
        svc.approve_payment_request(db, ADMIN, req.request_id)

    audits = db.query(AuditLog).filter(AuditLog.action == "APPROVE_PAYMENT").count()
    assert audits == 1


def _load_pending(session, request_id):
    req = session.query(PaymentRequest).filter(PaymentRequest.request_id == request_id).first()
    assert req.status == "PENDING"
    assert len(req.items) == 1
    return req


def test_concurrent_approve_loses_on_stale_session(db, other_db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])
    stale = _load_pending(other_db, req.request_id)

    svc.approve_payment_request(db, ADMIN, req.request_id)
    db.expire_all()
    stamped = db.get(Customer, customer.customer_id).first_emi_charge_paid_at
    assert stamped is not None

    assert stale.status == "PENDING"  # other_db has not seen the commit

    with pytest.raises(InvalidStateError, match="Request is not pending"):
        svc.approve_payment_request(other_db, ADMIN, req.request_id)

    db.expire_all()
    assert db.query(AuditLog).filter(AuditLog.action == "APPROVE_PAYMENT").count() == 1
    assert db.get(PaymentRequest, req.request_id).status == "APPROVED"
    assert db.get(Customer, customer.customer_id).first_emi_charge_paid_at == stamped


def test_reject_on_stale_session_after_approve_changes_nothing(db, other_db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])
    stale = _load_pending(other_db, req.request_id)

    svc.approve_payment_request(db, ADMIN, req.request_id)
    db.expire_all()
    stamped = db.get(Customer, customer.customer_id).first_emi_charge_paid_at

    assert stale.status == "PENDING"  # other_db has not seen the commit

    with pytest.raises(InvalidStateError, match="Request is not pending"):
        svc.reject_payment_request(other_db, ADMIN, req.request_id, reason="late")

    db.expire_all()
    assert db.query(AuditLog).filter(AuditLog.action == "APPROVE_PAYMENT").count() == 1
    assert db.query(AuditLog).filter(AuditLog.action == "REJECT_PAYMENT").count() == 0
    out = db.get(PaymentRequest, req.request_id)
    assert out.status == "APPROVED"
    assert out.rejection_reason is None
    row = emis_of(db, customer.customer_id)[0]
    assert row.status == "APPROVED"
    assert row.paid_at is not None
    assert db.get(Customer, customer.customer_id).first_emi_charge_paid_at == stamped


def test_approve_on_stale_session_after_reject_changes_nothing(db, other_db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])
    stale = _load_pending(other_db, req.request_id)

    svc.reject_payment_request(db, ADMIN, req.request_id, reason="no cash")

    assert stale.status == "PENDING"  # other_db has not seen the commit

    with pytest.raises(InvalidStateError):
        svc.approve_payment_request(other_db, ADMIN, req.request_id)

    db.expire_all()
    assert db.query(AuditLog).filter(AuditLog.action == "APPROVE_PAYMENT").count() == 0
    assert db.get(PaymentRequest, req.request_id).status == "REJECTED"
    assert emis_of(db, customer.customer_id)[0].status == "UNPAID"
    assert db.get(Customer, customer.customer_id).first_emi_charge_paid_at is None


def test_schedule_edit_refused_after_rejected_request(db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])
    svc.reject_payment_request(db, ADMIN, req.request_id, reason="retry")
    original_due = emis[0].due_date

    with pytest.raises(ConflictError):
        update_customer(db, ADMIN, customer.customer_id, CustomerUpdate(emi_due_day=20))

    db.expire_all()
    item = db.query(PaymentRequestItem).filter(PaymentRequestItem.request_id == req.request_id).one()
    assert item.emi_id == emis[0].emi_id
    assert db.get(EMISchedule, item.emi_id).due_date == original_due == date(2025, 2, 5)
    assert db.get(Customer, customer.customer_id).emi_due_day == 5
    assert db.query(PaymentRequestItem).count() == 1


def test_retailer_cannot_approve(db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])

    with pytest.raises(ForbiddenError):
        svc.approve_payment_request(db, retailer_caller(retailer), req.request_id)


def test_reject_reverts_status_and_keeps_fine(db, setup):
    retailer, customer, emis = setup
    emis[0].fine_amount = 45000
    db.commit()
    req = _submit(db, retailer, customer, [emis[0].emi_id])

    out = svc.reject_payment_request(db, ADMIN, req.request_id, reason="Cash not received")

    assert out.status == "REJECTED"
    assert out.rejection_reason == "Cash not received"
    row = emis_of(db, customer.customer_id)[0]
    assert row.status == "UNPAID"
    assert row.fine_amount == 45000
    assert row.fine_waived is False


def test_reject_needs_a_reason(db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])

    with pytest.raises(ValidationError, match="Rejection reason is required"):
        svc.reject_payment_request(db, ADMIN, req.request_id, reason="  ")
    assert emis_of(db, customer.customer_id)[0].status == "PENDING_APPROVAL"


def test_approve_after_reject_is_invalid_and_writes_nothing(db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])
    svc.reject_payment_request(db, ADMIN, req.request_id, reason="wrong amount")

    with pytest.raises(InvalidStateError):
        svc.approve_payment_request(db, ADMIN, req.request_id)

    db.expire_all()
    assert db.get(PaymentRequest, req.request_id).status == "REJECTED"
    assert emis_of(db, customer.customer_id)[0].status == "UNPAID"
    assert db.get(Customer, customer.customer_id).first_emi_charge_paid_at is None


def test_later_reject_does_not_clear_first_charge(db, setup):
    retailer, customer, emis = setup
    first = _submit(db, retailer, customer, [emis[0].emi_id])
    svc.approve_payment_request(db, ADMIN, first.request_id)

    second = _submit(db, retailer, customer, [emis[1].emi_id])
    assert second.first_emi_charge_amount == 0
    svc.reject_payment_request(db, ADMIN, second.request_id, reason="duplicate")

    db.expire_all()
    assert db.get(Customer, customer.customer_id).first_emi_charge_paid_at is not None


def test_rejected_emi_can_be_submitted_again(db, setup):
    retailer, customer, emis = setup
    req = _submit(db, retailer, customer, [emis[0].emi_id])
    svc.reject_payment_request(db, ADMIN, req.request_id, reason="retry")

    again = _submit(db, retailer, customer, [emis[0].emi_id])

    assert again.status == "PENDING"
    assert again.first_emi_charge_amount == 20000


# ----------------------------
# Direct approve
# ----------------------------
def test_direct_approve_settles_in_one_step(db, setup):
    _, customer, emis = setup

    req = svc.direct_approve_payment(
        db, ADMIN, customer_id=customer.customer_id, emi_ids=[emis[0].emi_id], mode="UPI", today=TODAY
    )

    assert req.status == "APPROVED"
    assert req.approved_by == ADMIN.caller_id
    assert req.total_amount == 120000
    row = emis_of(db, customer.customer_id)[0]
    assert row.status == "APPROVED"
    assert row.collected_by_role == "admin"
    assert row.mode == "UPI"


def test_direct_approve_is_admin_only(db, setup):
    retailer, customer, emis = setup

    with pytest.raises(ForbiddenError):
        svc.direct_approve_payment(
            db, retailer_caller(retailer), customer_id=customer.customer_id,
            emi_ids=[emis[0].emi_id], mode="CASH",
        )


def test_direct_approve_refuses_row_pending_approval(db, setup):
    retailer, customer, emis = setup
    _submit(db, retailer, customer, [emis[0].emi_id])

    with pytest.raises(ConflictError):
        svc.direct_approve_payment(
            db, ADMIN, customer_id=customer.customer_id, emi_ids=[emis[0].emi_id], mode="CASH", today=TODAY
        )
    assert db.query(PaymentRequest).count() == 1


# ----------------------------
# Reads
# ----------------------------
def test_retailer_lists_only_own_requests(db, setup):
    retailer, customer, emis = setup
    other = make_retailer(db, n=2, pin="5555")
    other_customer = make_customer(db, other, imei="490154203237518", mobile="9000000000")
    _submit(db, retailer, customer, [emis[0].emi_id])
    svc.submit_payment_request(
        db, retailer_caller(other), customer_id=other_customer.customer_id,
        emi_ids=[emis_of(db, other_customer.customer_id)[0].emi_id],
        mode="CASH", retail_pin="5555", today=TODAY,
    )

    mine = svc.list_payment_requests(db, retailer_caller(retailer))
    everyone = svc.list_payment_requests(db, ADMIN, status="pending")

    assert {r.retailer_id for r in mine} == {retailer.retailer_id}
    assert len(everyone) == 2
    assert svc.count_pending(db) == 2
    other_req = next(r for r in everyone if r.retailer_id == other.retailer_id)
    with pytest.raises(ForbiddenError):
        svc.get_payment_request(db, retailer_caller(retailer), other_req.request_id)
