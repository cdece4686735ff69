"""
Threaded races against a file-backed SQLite database.

Each worker gets its own connection, so writers really contend: the
booking lock and the conditional intent update are the first writes of
their transactions and queue on SQLite's database lock. These always run;
tests/test_concurrency_postgres.py repeats them with row locks on a live
server.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from inklink import crud
from inklink.constants.statuses import OfferStatus, PaymentIntentStatus
from inklink.core.config import Settings
from inklink.core.exceptions import SchedulingConflictError
from inklink.db.base_class import Base
from inklink.models.appointment import Appointment
from inklink.models.notification import Notification
from inklink.models.tattoo_offer import TattooOffer
from inklink.schemas.appointment import AppointmentCreate
from inklink.services.negotiation_service import NegotiationService
from inklink.services.payment import (
    PaymentOutcome,
    PaymentProviderFactory,
    PaymentReconciliationService,
    ProviderEvent,
)
from inklink.services.scheduling_service import SchedulingService
import inklink.models  # noqa: F401

from tests.utils.auth import make_caller
from tests.utils.concurrency import race
from tests.utils.marketplace import create_offer, create_profile, create_tattoo_request, future_slot

WORKERS = 6


@pytest.fixture
def file_sessionmaker(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_overlapping_bookings_race(file_sessionmaker):
    setup = file_sessionmaker()
    profile_id = create_profile(setup).id
    setup.close()
    start = future_slot(days=10, hour=13)

    def book(client_id, offset_minutes):
        def attempt(session):
            return SchedulingService(session).book(
                caller=make_caller(client_id),
                obj_in=AppointmentCreate(
                    profile_id=profile_id,
                    client_id=client_id,
                    appointment_date=start.replace(minute=offset_minutes),
                    duration_hours=2,
                ),
            ).id
        return attempt

    booked, errors = race(
        file_sessionmaker, [book(f"user_{i}", i * 5) for i in range(WORKERS)]
    )

    assert len(booked) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, SchedulingConflictError) for e in errors)
    check = file_sessionmaker()
    assert check.query(Appointment).count() == 1
    check.close()


def test_capture_and_webhook_race_applies_once(file_sessionmaker):
    setup = file_sessionmaker()
    request = create_tattoo_request(setup, client_id="user_payer")
    offer_id = create_offer(setup, request, responder_id="prof_paid").id
    NegotiationService(setup).change_offer_status(
        caller=make_caller("user_payer"), offer_id=offer_id, target=OfferStatus.ACCEPTED
    )
    intent = crud.payment_intent.create_pending(
        setup,
        user_id="user_payer",
        amount=5000,
        currency="USD",
        processor="stripe",
        description=None,
        metadata={"client_id": "user_payer", "artist_id": "prof_paid", "offer_id": offer_id},
    )
    intent.external_id = f"pi_{intent.id}"
    intent.status = PaymentIntentStatus.PROCESSING.value
    setup.commit()
    external_id = intent.external_id
    setup.close()

    def confirm(source):
        def attempt(session):
            service = PaymentReconciliationService(session, PaymentProviderFactory(), Settings())
            return service.reconcile(
                ProviderEvent(external_id, PaymentOutcome.SUCCEEDED), source=source
            )
        return attempt

    results, errors = race(
        file_sessionmaker, [confirm("webhook" if i % 2 else "capture") for i in range(WORKERS)]
    )

    assert errors == []
    assert [r.duplicate for r in results].count(False) == 1
    check = file_sessionmaker()
    assert check.get(TattooOffer, offer_id).is_paid is True
    assert check.query(Notification).filter(Notification.type == "payment_received").count() == 1
    check.close()
