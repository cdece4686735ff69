"""
Tests for the request/offer workflow.

Verifies that NegotiationService:
- Enforces who may create requests and offers, and on which requests
- Accepts one offer atomically: the request moves to in_progress, every
  other pending offer is rejected, and exactly one notification goes out
- Applies the offer transition table and the per-role permissions
- Keeps content edits and status changes apart
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from inklink import crud
from inklink.constants.statuses import OfferStatus, RequestStatus, UserRole
from inklink.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DuplicateOfferError,
    InvalidTransitionError,
    NotFoundError,
    RequestClosedError,
    ValidationError,
)
from inklink.models.notification import Notification
from inklink.models.tattoo_offer import TattooOffer
from inklink.schemas.tattoo_offer import TattooOfferCreate, TattooOfferUpdate
from inklink.schemas.tattoo_request import TattooRequestCreate, TattooRequestUpdate
from inklink.services.negotiation_service import NegotiationService
from inklink.utils.time import utcnow

from tests.utils.auth import make_caller
from tests.utils.marketplace import create_offer, create_tattoo_request

CLIENT = "user_client"


def _offer_in(request_id: str, **overrides) -> TattooOfferCreate:
    data = {
        "request_id": request_id,
        "message": "Happy to take this on",
        "price": Decimal("500.00"),
        "estimated_duration": 3.5,
    }
    data.update(overrides)
    return TattooOfferCreate(**data)


def _notifications(db, type=None, recipient_id=None):
    query = db.query(Notification)
    if type:
        query = query.filter(Notification.type == type)
    if recipient_id:
        query = query.filter(Notification.recipient_id == recipient_id)
    return query.all()


def _status(db, offer_id: str) -> str:
    db.expire_all()
    return db.get(TattooOffer, offer_id).status


# --- Requests ---

def test_client_creates_open_request(db):
    service = NegotiationService(db)
    request = service.create_request(
        caller=make_caller(CLIENT),
        obj_in=TattooRequestCreate(
            title="Moth", description="Moth on sternum", style="blackwork",
            size="medium", placement="sternum", budget_min=200, budget_max=400,
        ),
    )

    assert request.status == RequestStatus.OPEN.value
    assert request.client_id == CLIENT
    assert request.is_active is True


def test_only_clients_create_requests(db):
    with pytest.raises(AuthorizationError):
        NegotiationService(db).create_request(
            caller=make_caller("prof_a", UserRole.ARTIST),
            obj_in=TattooRequestCreate(
                title="Moth", description="d", style="s", size="m", placement="p"
            ),
        )


def test_budget_range_is_validated(db):
    with pytest.raises(ValidationError):
        NegotiationService(db).create_request(
            caller=make_caller(CLIENT),
            obj_in=TattooRequestCreate(
                title="Moth", description="d", style="s", size="m", placement="p",
                budget_min=900, budget_max=100,
            ),
        )


def test_owner_cancels_request(db):
    request = create_tattoo_request(db, client_id=CLIENT)

    updated = NegotiationService(db).update_request(
        caller=make_caller(CLIENT),
        request_id=request.id,
        obj_in=TattooRequestUpdate(status=RequestStatus.CANCELLED),
    )

    assert updated.status == RequestStatus.CANCELLED.value


def test_request_status_other_than_cancel_is_rejected(db):
    request = create_tattoo_request(db, client_id=CLIENT)

    with pytest.raises(InvalidTransitionError):
        NegotiationService(db).update_request(
            caller=make_caller(CLIENT),
            request_id=request.id,
            obj_in=TattooRequestUpdate(status=RequestStatus.COMPLETED),
        )


def test_only_owner_updates_request(db):
    request = create_tattoo_request(db, client_id=CLIENT)

    with pytest.raises(AuthorizationError):
        NegotiationService(db).update_request(
            caller=make_caller("user_other"),
            request_id=request.id,
            obj_in=TattooRequestUpdate(title="Changed"),
        )


def test_delete_request_without_offers_is_hard(db):
    request = create_tattoo_request(db, client_id=CLIENT)

    assert NegotiationService(db).delete_request(caller=make_caller(CLIENT), request_id=request.id) is True
    assert crud.tattoo_request.get(db, request.id) is None


def test_delete_request_with_offers_is_soft(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)

    assert service.delete_request(caller=make_caller(CLIENT), request_id=request.id) is False
    assert crud.tattoo_request.get(db, request.id).is_active is False
    with pytest.raises(NotFoundError):
        service.get_request(request_id=request.id)


# --- Offer creation ---

def test_offer_notifies_request_owner(db):
    request = create_tattoo_request(db, client_id=CLIENT)

    offer = NegotiationService(db).create_offer(
        caller=make_caller("prof_a", UserRole.ARTIST), obj_in=_offer_in(request.id)
    )

    assert offer.status == OfferStatus.PENDING.value
    assert offer.responder_type == "artist"
    notes = _notifications(db, type="new_offer")
    assert len(notes) == 1
    assert notes[0].recipient_id == CLIENT
    assert notes[0].payload["offer_id"] == offer.id


def test_clients_cannot_make_offers(db):
    request = create_tattoo_request(db, client_id=CLIENT)

    with pytest.raises(AuthorizationError):
        NegotiationService(db).create_offer(caller=make_caller("user_x"), obj_in=_offer_in(request.id))


def test_offer_on_missing_request(db):
    with pytest.raises(NotFoundError):
        NegotiationService(db).create_offer(
            caller=make_caller("prof_a", UserRole.ARTIST), obj_in=_offer_in("req_missing")
        )


def test_duplicate_offer_is_rejected(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    create_offer(db, request, responder_id="prof_a")

    with pytest.raises(DuplicateOfferError) as exc_info:
        NegotiationService(db).create_offer(
            caller=make_caller("prof_a", UserRole.ARTIST), obj_in=_offer_in(request.id)
        )
    assert exc_info.value.status_code == 400


def test_offer_on_own_request_is_rejected(db):
    request = create_tattoo_request(db, client_id="prof_self")

    with pytest.raises(ValidationError):
        NegotiationService(db).create_offer(
            caller=make_caller("prof_self", UserRole.ARTIST), obj_in=_offer_in(request.id)
        )


def test_targeted_request_only_accepts_its_artist(db):
    request = create_tattoo_request(db, client_id=CLIENT, artist_id="prof_target")
    service = NegotiationService(db)

    with pytest.raises(AuthorizationError):
        service.create_offer(caller=make_caller("prof_other", UserRole.ARTIST), obj_in=_offer_in(request.id))

    offer = service.create_offer(
        caller=make_caller("prof_target", UserRole.ARTIST), obj_in=_offer_in(request.id)
    )
    assert offer.responder_id == "prof_target"


def test_offer_on_closed_request(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    request.status = RequestStatus.IN_PROGRESS.value
    db.commit()

    with pytest.raises(RequestClosedError) as exc_info:
        NegotiationService(db).create_offer(
            caller=make_caller("prof_a", UserRole.ARTIST), obj_in=_offer_in(request.id)
        )
    assert exc_info.value.status_code == 400


# --- Acceptance ---

def test_accept_rejects_siblings_and_notifies_once(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    o2 = create_offer(db, request, responder_id="prof_b")
    o3 = create_offer(db, request, responder_id="prof_c", role=UserRole.STUDIO)

    accepted = NegotiationService(db).change_offer_status(
        caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED
    )

    assert accepted.status == OfferStatus.ACCEPTED.value
    assert _status(db, o2.id) == OfferStatus.REJECTED.value
    assert _status(db, o3.id) == OfferStatus.REJECTED.value
    assert crud.tattoo_request.get(db, request.id).status == RequestStatus.IN_PROGRESS.value

    accepted_notes = _notifications(db, type="offer_accepted")
    assert [n.recipient_id for n in accepted_notes] == ["prof_a"]
    assert _notifications(db, type="offer_rejected") == []


def test_at_most_one_offer_accepted(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    o2 = create_offer(db, request, responder_id="prof_b")
    service = NegotiationService(db)

    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)
    with pytest.raises(InvalidTransitionError):
        service.change_offer_status(caller=make_caller(CLIENT), offer_id=o2.id, target=OfferStatus.ACCEPTED)

    accepted = db.query(TattooOffer).filter(
        TattooOffer.request_id == request.id, TattooOffer.status == "accepted"
    ).count()
    assert accepted == 1


def test_accept_twice_is_invalid(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)

    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)
    with pytest.raises(InvalidTransitionError):
        service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)

    assert len(_notifications(db, type="offer_accepted")) == 1


def test_accept_on_cancelled_request_rolls_back(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)
    service.update_request(
        caller=make_caller(CLIENT),
        request_id=request.id,
        obj_in=TattooRequestUpdate(status=RequestStatus.CANCELLED),
    )

    with pytest.raises(ConflictError) as exc_info:
        service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)

    assert exc_info.value.status_code == 409
    assert _status(db, o1.id) == OfferStatus.PENDING.value
    assert _notifications(db, type="offer_accepted") == []


def test_only_request_owner_accepts(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")

    with pytest.raises(AuthorizationError):
        NegotiationService(db).change_offer_status(
            caller=make_caller("prof_a", UserRole.ARTIST), offer_id=o1.id, target=OfferStatus.ACCEPTED
        )


def test_outsiders_cannot_touch_offers(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")

    with pytest.raises(AuthorizationError):
        NegotiationService(db).change_offer_status(
            caller=make_caller("user_stranger"), offer_id=o1.id, target=OfferStatus.REJECTED
        )


# --- Other transitions ---

def test_explicit_reject_notifies_responder(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")

    NegotiationService(db).change_offer_status(
        caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.REJECTED
    )

    notes = _notifications(db, type="offer_rejected")
    assert [n.recipient_id for n in notes] == ["prof_a"]


def test_rejected_offer_is_terminal(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)
    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.REJECTED)

    with pytest.raises(InvalidTransitionError) as exc_info:
        service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)
    assert exc_info.value.status_code == 400


def test_responder_withdraws_but_client_cannot(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)

    with pytest.raises(AuthorizationError):
        service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.WITHDRAWN)

    withdrawn = service.change_offer_status(
        caller=make_caller("prof_a", UserRole.ARTIST), offer_id=o1.id, target=OfferStatus.WITHDRAWN
    )
    assert withdrawn.status == OfferStatus.WITHDRAWN.value


def test_complete_closes_request(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)
    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)

    completed = service.change_offer_status(
        caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.COMPLETED
    )

    assert completed.status == OfferStatus.COMPLETED.value
    db.expire_all()
    assert crud.tattoo_request.get(db, request.id).status == RequestStatus.COMPLETED.value


def test_cancel_leaves_request_in_progress(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)
    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)

    cancelled = service.change_offer_status(
        caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.CANCELLED
    )

    assert cancelled.status == OfferStatus.CANCELLED.value
    db.expire_all()
    assert crud.tattoo_request.get(db, request.id).status == RequestStatus.IN_PROGRESS.value


def test_cancelling_in_progress_request_cancels_accepted_offer(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)
    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)

    service.update_request(
        caller=make_caller(CLIENT),
        request_id=request.id,
        obj_in=TattooRequestUpdate(status=RequestStatus.CANCELLED),
    )

    assert _status(db, o1.id) == OfferStatus.CANCELLED.value
    with pytest.raises(InvalidTransitionError):
        service.change_offer_status(
            caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.COMPLETED
        )
    assert crud.tattoo_offer.mark_paid_if_payable(db, offer_id=o1.id, paid_at=utcnow()) == 0
    db.rollback()
    db.expire_all()
    assert crud.tattoo_request.get(db, request.id).status == RequestStatus.CANCELLED.value


def test_complete_on_closed_request_rolls_back(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)
    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)
    # Request closed behind the offer's back
    crud.tattoo_request.set_status_if(
        db,
        request_id=request.id,
        from_statuses=[RequestStatus.IN_PROGRESS.value],
        to_status=RequestStatus.CANCELLED.value,
    )
    db.commit()

    with pytest.raises(InvalidTransitionError) as exc_info:
        service.change_offer_status(
            caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.COMPLETED
        )

    assert exc_info.value.details["entity"] == "tattoo_request"
    assert _status(db, o1.id) == OfferStatus.ACCEPTED.value


# --- Content edits ---

def test_status_and_content_in_one_update_is_rejected(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")

    with pytest.raises(ValidationError):
        NegotiationService(db).update_offer(
            caller=make_caller("prof_a", UserRole.ARTIST),
            offer_id=o1.id,
            obj_in=TattooOfferUpdate(status=OfferStatus.WITHDRAWN, price=Decimal("10.00")),
        )


def test_empty_update_is_rejected(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")

    with pytest.raises(ValidationError):
        NegotiationService(db).update_offer(
            caller=make_caller("prof_a", UserRole.ARTIST), offer_id=o1.id, obj_in=TattooOfferUpdate()
        )


def test_responder_edits_pending_offer(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")

    edited = NegotiationService(db).update_offer(
        caller=make_caller("prof_a", UserRole.ARTIST),
        offer_id=o1.id,
        obj_in=TattooOfferUpdate(price=Decimal("720.00"), message="Updated quote"),
    )

    assert edited.price == Decimal("720.00")
    assert edited.message == "Updated quote"
    assert edited.status == OfferStatus.PENDING.value


def test_edit_rejects_inverted_window(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    start = utcnow() + timedelta(days=10)

    with pytest.raises(ValidationError):
        NegotiationService(db).update_offer(
            caller=make_caller("prof_a", UserRole.ARTIST),
            offer_id=o1.id,
            obj_in=TattooOfferUpdate(availability_start=start, availability_end=start - timedelta(days=1)),
        )


def test_accepted_offer_cannot_be_edited_or_deleted(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)
    service.change_offer_status(caller=make_caller(CLIENT), offer_id=o1.id, target=OfferStatus.ACCEPTED)
    responder = make_caller("prof_a", UserRole.ARTIST)

    with pytest.raises(ValidationError):
        service.edit_offer(caller=responder, offer_id=o1.id, changes={"message": "Too late"})
    with pytest.raises(ValidationError):
        service.delete_offer(caller=responder, offer_id=o1.id)


def test_responder_deletes_pending_offer(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)

    with pytest.raises(AuthorizationError):
        service.delete_offer(caller=make_caller(CLIENT), offer_id=o1.id)

    service.delete_offer(caller=make_caller("prof_a", UserRole.ARTIST), offer_id=o1.id)
    assert crud.tattoo_offer.get(db, o1.id) is None


def test_get_offer_visibility(db):
    request = create_tattoo_request(db, client_id=CLIENT)
    o1 = create_offer(db, request, responder_id="prof_a")
    service = NegotiationService(db)

    assert service.get_offer(caller=make_caller(CLIENT), offer_id=o1.id).id == o1.id
    with pytest.raises(AuthorizationError):
        service.get_offer(caller=make_caller("prof_b", UserRole.ARTIST), offer_id=o1.id)
    with pytest.raises(NotFoundError):
        service.get_offer(caller=make_caller(CLIENT), offer_id="offer_missing")
