# backend/tests/repositories/test_appointment_repository.py
"""Appointment repository: ledger writes, pending payments and totals."""

from datetime import date, time
from decimal import Decimal

import pytest

from treatbook.repositories.appointment_repository import AppointmentRepository
from treatbook.repositories.availability_repository import AvailabilityRepository


@pytest.fixture
def repo(db):
    return AppointmentRepository(db)


@pytest.fixture
def make_appointment(repo, db, test_user):
    numbers = iter(range(2001, 3000))

    def _make(amount="200.00", paid="0.00", practitioner="Dr Smith", start=time(10, 0), **extra):
        appointment = repo.create(
            booking_number=next(numbers),
            user_id=test_user.id,
            practitioner=practitioner,
            slot_date=date(2030, 1, 15),
            slot_time=start,
            duration_minutes=30,
            amount=Decimal(amount),
            paid_amount=Decimal(paid),
            payment_status="none",
            **extra,
        )
        db.commit()
        return appointment

    return _make


def test_append_transaction_positions(repo, make_appointment):
    appointment = make_appointment()

    first = repo.append_transaction(
        appointment, amount=Decimal("50"), payment_method="credit_balance", payment_type="credit"
    )
    second = repo.append_transaction(
        appointment, amount=Decimal("150"), payment_method="cash", payment_type="full"
    )

    assert (first.position, second.position) == (1, 2)
    assert [d.payment_method for d in appointment.transaction_details] == ["credit_balance", "cash"]


def test_pending_payment_is_replaced(repo, db, make_appointment):
    appointment = make_appointment()

    repo.set_pending_payment(
        appointment,
        correlation_id="PF_1_a",
        amount=Decimal("200"),
        gateway_amount=Decimal("200"),
        payment_type="full",
        use_credit=False,
    )
    repo.set_pending_payment(
        appointment,
        correlation_id="PF_2_a",
        amount=Decimal("200"),
        gateway_amount=Decimal("150"),
        payment_type="full",
        use_credit=True,
    )
    db.commit()

    assert appointment.pending_payment.correlation_id == "PF_2_a"
    assert repo.get_by_correlation_id("PF_1_a") is None
    assert repo.get_by_correlation_id("PF_2_a").id == appointment.id

    repo.clear_pending_payment(appointment)
    db.commit()
    assert repo.get_by_correlation_id("PF_2_a") is None


def test_ledger_totals_exclude_credited_appointments(repo, db, make_appointment):
    make_appointment(amount="200.00", paid="200.00")
    make_appointment(amount="100.00", paid="50.00")
    credited = make_appointment(amount="300.00", paid="100.00", cancelled=True)
    repo.append_transaction(
        credited,
        amount=Decimal("100.00"),
        payment_method="credit_balance",
        payment_type="credit_refund",
    )
    db.commit()

    received, invoiced = repo.get_ledger_totals()

    assert received == Decimal("250.00")
    assert invoiced == Decimal("600.00")


def test_list_all_newest_booking_first(repo, make_appointment):
    make_appointment(start=time(9, 0))
    make_appointment(start=time(11, 0))

    numbers = [a.booking_number for a in repo.list_all()]

    assert numbers == sorted(numbers, reverse=True)
    assert len(repo.list_all(limit=1)) == 1


def test_conflict_check_skips_cancelled_and_other_practitioners(db, make_appointment):
    make_appointment(start=time(9, 0))
    make_appointment(start=time(11, 0), cancelled=True)
    make_appointment(start=time(12, 0), practitioner="Dr Jones")

    booked = AvailabilityRepository(db).get_appointments_for_conflict_check(
        "Dr Smith", date(2030, 1, 15)
    )

    assert [a.slot_time for a in booked] == [time(9, 0)]


def test_get_by_booking_number(repo, make_appointment):
    appointment = make_appointment()

    assert repo.get_by_booking_number(appointment.booking_number).id == appointment.id
    assert repo.get_by_booking_number(999999) is None
