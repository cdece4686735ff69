from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from inklink import crud
from inklink.crud.crud_audit_log import CRUDAuditLog
from inklink.crud.crud_notification import CRUDNotification
from inklink.crud.crud_profile import CRUDProfile
from inklink.models.notification import Notification
from inklink.models.payment_audit_log import PaymentAuditLog
from inklink.models.profile import Profile

from tests.utils.marketplace import create_profile


def test_audit_log_commit_false_only_flushes():
    db_session = MagicMock()

    CRUDAuditLog(PaymentAuditLog).log_action(
        db_session,
        action="payment.succeeded",
        actor_type="webhook",
        entity_type="payment_intent",
        entity_id="pint_1",
        commit=False,
    )

    db_session.add.assert_called_once()
    db_session.flush.assert_called_once()
    db_session.commit.assert_not_called()


def test_notification_add_is_staged_not_committed():
    db_session = MagicMock()

    result = CRUDNotification(Notification).add(
        db_session,
        recipient_id="user_1",
        type="new_offer",
        title="New offer received",
        message="You have a new offer",
        dedupe_key="new_offer:offer_1",
    )

    db_session.flush.assert_called_once()
    db_session.commit.assert_not_called()
    assert result.is_read is False


def test_lock_for_booking_bumps_version():
    db_session = MagicMock()
    profile = Profile(id="prof_1", profile_type="artist", booking_version=3)
    query = db_session.query.return_value.filter.return_value
    query.populate_existing.return_value.with_for_update.return_value.first.return_value = profile

    result = CRUDProfile(Profile).lock_for_booking(db_session, id="prof_1")

    assert result.booking_version == 4
    db_session.flush.assert_called_once()
    db_session.commit.assert_not_called()


def test_lock_for_booking_missing_profile(db):
    assert crud.profile.lock_for_booking(db, id="prof_missing") is None


def test_notification_dedupe_key_is_unique(db):
    crud.notification.add(
        db, recipient_id="user_1", type="new_offer", title="t", message="m", dedupe_key="k1"
    )
    db.commit()

    with pytest.raises(IntegrityError):
        crud.notification.add(
            db, recipient_id="user_1", type="new_offer", title="t", message="m", dedupe_key="k1"
        )
    db.rollback()


def test_transition_by_external_id_applies_once(db):
    intent = crud.payment_intent.create_pending(
        db,
        user_id="user_1",
        amount=5000,
        currency="USD",
        processor="stripe",
        description=None,
        metadata={"client_id": "user_1"},
    )
    intent.external_id = "pi_123"
    db.commit()

    values = {"status": "completed"}
    assert crud.payment_intent.transition_by_external_id(
        db, external_id="pi_123", from_statuses=["pending", "processing"], values=values
    ) == 1
    assert crud.payment_intent.transition_by_external_id(
        db, external_id="pi_123", from_statuses=["pending", "processing"], values=values
    ) == 0
    db.commit()


def test_payment_stats(db):
    for status, amount in (("completed", 5000), ("completed", 2500), ("failed", 1000), ("processing", 700)):
        intent = crud.payment_intent.create_pending(
            db,
            user_id="user_1",
            amount=amount,
            currency="USD",
            processor="stripe",
            description=None,
            metadata={"client_id": "user_1"},
        )
        intent.status = status
    db.commit()

    stats = crud.payment_intent.get_stats(db, user_id="user_1")

    assert stats["total_count"] == 4
    assert stats["completed_count"] == 2
    assert stats["failed_count"] == 1
    assert stats["pending_count"] == 1
    assert stats["total_completed_amount"] == 7500
    assert stats["by_processor"] == {"stripe": 4}


def test_received_stats_follow_metadata_artist(db):
    for user_id, artist_id, status in (
        ("user_1", "prof_a", "completed"),
        ("user_2", "prof_a", "failed"),
        ("user_2", "prof_b", "completed"),
    ):
        intent = crud.payment_intent.create_pending(
            db,
            user_id=user_id,
            amount=3000,
            currency="USD",
            processor="paypal",
            description=None,
            metadata={"client_id": user_id, "artist_id": artist_id},
        )
        intent.status = status
    db.commit()

    received = crud.payment_intent.get_stats(db, user_id="prof_a", direction="received")

    assert received["total_count"] == 2
    assert received["completed_count"] == 1
    assert received["failed_count"] == 1
    assert received["total_completed_amount"] == 3000
    assert crud.payment_intent.count_by_user(db, user_id="prof_a", direction="sent") == 0
    assert crud.payment_intent.count_by_user(db, user_id="user_2") == 2


def test_remove_if_only_deletes_matching_status(db):
    intent = crud.payment_intent.create_pending(
        db,
        user_id="user_1",
        amount=3000,
        currency="USD",
        processor="stripe",
        description=None,
        metadata={"client_id": "user_1"},
    )
    intent.status = "processing"
    db.commit()

    assert crud.payment_intent.remove_if(db, id=intent.id, statuses=["pending", "failed"]) == 0
    assert crud.payment_intent.remove_if(db, id=intent.id, statuses=["processing"]) == 1
    db.commit()
    assert crud.payment_intent.get(db, id=intent.id) is None



def test_profile_fixture_is_active(db):
    profile = create_profile(db)
    assert crud.profile.get(db, id=profile.id).is_active is True
