"""
Concurrency tests against a live PostgreSQL database.

SQLite serializes writers on its own, so the row locks and conditional
updates that keep these operations single-winner only get exercised on a
real server. Set TEST_DATABASE_URL (a database this test may create and
drop) to run them. tests/test_concurrency_sqlite.py runs the booking and
confirmation races on every run against a file-backed SQLite database,
where writers are serialized by the database lock instead.
"""

import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy_utils import create_database, database_exists, drop_database

from inklink import crud
from inklink.constants.statuses import OfferStatus, PaymentIntentStatus
from inklink.core.config import Settings
from inklink.core.exceptions import SchedulingConflictError
from inklink.db.base_class import Base
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

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")
WORKERS = 8

pytestmark = pytest.mark.skipif(
    not TEST_DATABASE_URL, reason="TEST_DATABASE_URL is not set"
)


@pytest.fixture(scope="module")
def pg_sessionmaker():
    if database_exists(TEST_DATABASE_URL):
        drop_database(TEST_DATABASE_URL)
    create_database(TEST_DATABASE_URL)
    engine = create_engine(TEST_DATABASE_URL, pool_size=WORKERS + 2)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
    drop_database(TEST_DATABASE_URL)


def test_concurrent_bookings_of_one_slot(pg_sessionmaker):
    setup = pg_sessionmaker()
    profile_id = create_profile(setup).id
    setup.close()
    start = future_slot(days=10, hour=13)

    def book(client_id):
        def attempt(session):
            return SchedulingService(session).book(
                caller=make_caller(client_id),
                obj_in=AppointmentCreate(
                    profile_id=profile_id,
                    client_id=client_id,
                    appointment_date=start,
                    duration_hours=2,
                ),
            ).id
        return attempt

    booked, errors = race(pg_sessionmaker, [book(f"user_{i}") for i in range(WORKERS)])

    assert len(booked) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, SchedulingConflictError) for e in errors)


def test_concurrent_accepts_on_one_request(pg_sessionmaker):
    setup = pg_sessionmaker()
    request = create_tattoo_request(setup, client_id="user_owner")
    request_id = request.id
    offer_ids = [
        create_offer(setup, request, responder_id=f"prof_{i}").id for i in range(WORKERS)
    ]
    setup.close()

    def accept(offer_id):
        def attempt(session):
            return NegotiationService(session).change_offer_status(
                caller=make_caller("user_owner"), offer_id=offer_id, target=OfferStatus.ACCEPTED
            ).id
        return attempt

    accepted, errors = race(pg_sessionmaker, [accept(offer_id) for offer_id in offer_ids])

    assert len(accepted) == 1
    assert len(errors) == WORKERS - 1
    check = pg_sessionmaker()
    statuses = [
        o.status for o in check.query(TattooOffer).filter(TattooOffer.request_id == request_id)
    ]
    check.close()
    assert statuses.count(OfferStatus.ACCEPTED.value) == 1
    assert statuses.count(OfferStatus.REJECTED.value) == WORKERS - 1


def test_concurrent_confirmations_apply_once(pg_sessionmaker):
    setup = pg_sessionmaker()
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
        pg_sessionmaker, [confirm("webhook" if i % 2 else "capture") for i in range(WORKERS)]
    )

    assert errors == []
    assert [r.duplicate for r in results].count(False) == 1
    check = pg_sessionmaker()
    assert check.get(TattooOffer, offer_id).is_paid is True
    assert check.query(Notification).filter(Notification.type == "payment_received").count() == 1
    check.close()
