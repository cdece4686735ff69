from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from inklink.constants.statuses import OfferStatus, UserRole
from inklink.models.notification import Notification
from inklink.models.payment_intent import PaymentIntent as PaymentIntentModel
from inklink.models.tattoo_offer import TattooOffer
from inklink.services.negotiation_service import NegotiationService
from inklink.services.payment import PaymentError
from tests.utils.auth import get_auth_headers, make_caller
from tests.utils.marketplace import create_offer, create_tattoo_request
from tests.utils.payments import webhook_body

CLIENT = "user_client"
ARTIST = "prof_artist"


def _accepted_offer(db: Session) -> TattooOffer:
    request = create_tattoo_request(db, client_id=CLIENT)
    offer = create_offer(db, request, responder_id=ARTIST)
    return NegotiationService(db).change_offer_status(
        caller=make_caller(CLIENT), offer_id=offer.id, target=OfferStatus.ACCEPTED
    )


def _create_intent(test_client: TestClient, offer_id=None, processor="stripe", amount=5000):
    return test_client.post(
        "/api/v1/payments/intent",
        headers=get_auth_headers(CLIENT),
        json={
            "amount": amount,
            "currency": "usd",
            "processor": processor,
            "description": "Deposit",
            "metadata": {"client_id": CLIENT, "artist_id": ARTIST, "offer_id": offer_id},
        },
    )


def test_create_payment_intent(test_client: TestClient, db: Session) -> None:
    response = _create_intent(test_client)

    assert response.status_code == 201
    content = response.json()
    intent = content["payment_intent"]
    assert intent["status"] == "processing"
    assert intent["currency"] == "USD"
    assert intent["external_id"] == f"stripe_{intent['id']}"
    assert intent["metadata"]["client_id"] == CLIENT
    assert content["client_secret"].endswith("_secret")


def test_create_payment_intent_below_minimum(test_client: TestClient, db: Session) -> None:
    response = _create_intent(test_client, amount=10)

    assert response.status_code == 400
    assert response.json()["error"]["field"] == "amount"


def test_unconfigured_processor_is_an_external_error(test_client: TestClient, db: Session) -> None:
    response = _create_intent(test_client, processor="paypal")

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["category"] == "external_service_error"
    assert error["service"] == "paypal"


def test_processor_failure_body_is_generic(test_client: TestClient, db: Session, stripe_fake) -> None:
    stripe_fake.create_error = PaymentError(code="CARD_ERROR", message="Card 4242 declined by issuer")

    response = _create_intent(test_client)

    assert response.status_code == 500
    assert "4242" not in response.text


def test_capture_marks_offer_paid(test_client: TestClient, db: Session) -> None:
    offer = _accepted_offer(db)
    intent = _create_intent(test_client, offer_id=offer.id).json()["payment_intent"]

    first = test_client.post(
        "/api/v1/payments/stripe/capture",
        headers=get_auth_headers(CLIENT),
        json={"external_id": intent["external_id"]},
    )
    second = test_client.post(
        "/api/v1/payments/stripe/capture",
        headers=get_auth_headers(CLIENT),
        json={"external_id": intent["external_id"]},
    )

    assert first.status_code == 200
    assert first.json() == {
        "payment_intent_id": intent["id"],
        "status": "completed",
        "duplicate": False,
        "offer_marked_paid": True,
    }
    assert second.json()["duplicate"] is True

    db.expire_all()
    assert db.get(TattooOffer, offer.id).is_paid is True


def test_capture_by_another_user_is_forbidden(test_client: TestClient, db: Session) -> None:
    intent = _create_intent(test_client).json()["payment_intent"]

    response = test_client.post(
        "/api/v1/payments/stripe/capture",
        headers=get_auth_headers("user_other"),
        json={"external_id": intent["external_id"]},
    )

    assert response.status_code == 403


def test_webhook_then_redelivery(test_client: TestClient, db: Session) -> None:
    offer = _accepted_offer(db)
    intent = _create_intent(test_client, offer_id=offer.id).json()["payment_intent"]
    body = webhook_body("evt_100", intent["external_id"])
    headers = {"Stripe-Signature": "valid", "Content-Type": "application/json"}

    first = test_client.put("/api/v1/payments/webhook", content=body, headers=headers)
    second = test_client.put("/api/v1/payments/webhook", content=body, headers=headers)

    assert first.status_code == 200
    assert first.json() == {"received": True, "duplicate": False, "status": "processed"}
    assert second.status_code == 200
    assert second.json()["duplicate"] is True

    db.expire_all()
    received = db.query(Notification).filter(Notification.type == "payment_received").all()
    assert [n.recipient_id for n in received] == [ARTIST]


def test_webhook_with_bad_signature(test_client: TestClient, db: Session) -> None:
    response = test_client.put(
        "/api/v1/payments/webhook",
        content=webhook_body("evt_1", "pi_1"),
        headers={"Stripe-Signature": "forged"},
    )
    unsigned = test_client.put("/api/v1/payments/webhook", content=webhook_body("evt_1", "pi_1"))

    assert response.status_code == 400
    assert unsigned.status_code == 400


def test_get_and_list_payments(test_client: TestClient, db: Session) -> None:
    intent = _create_intent(test_client).json()["payment_intent"]
    headers = get_auth_headers(CLIENT)

    fetched = test_client.get(f"/api/v1/payments/{intent['id']}", headers=headers)
    listed = test_client.get("/api/v1/payments?status=processing", headers=headers)
    stats = test_client.get("/api/v1/payments/stats", headers=headers)
    hidden = test_client.get(f"/api/v1/payments/{intent['id']}", headers=get_auth_headers("user_other"))

    assert fetched.status_code == 200
    assert listed.json()["total"] == 1
    assert stats.json()["sent"]["pending_count"] == 1
    assert hidden.status_code == 403


def test_artist_lists_received_payments(test_client: TestClient, db: Session) -> None:
    _create_intent(test_client)
    headers = get_auth_headers(ARTIST, UserRole.ARTIST)

    received = test_client.get("/api/v1/payments?type=received", headers=headers)
    sent = test_client.get("/api/v1/payments?type=sent", headers=headers)
    stats = test_client.get("/api/v1/payments/stats", headers=headers)

    assert received.json()["total"] == 1
    assert sent.json()["total"] == 0
    assert stats.json()["received"]["total_count"] == 1
    assert stats.json()["sent"]["total_count"] == 0


def test_delete_failed_payment(test_client: TestClient, db: Session, stripe_fake) -> None:
    offer = _accepted_offer(db)
    stripe_fake.create_error = PaymentError(code="CARD_ERROR", message="Card declined")
    _create_intent(test_client, offer_id=offer.id)
    headers = get_auth_headers(CLIENT)
    intent_id = db.query(PaymentIntentModel).one().id

    forbidden = test_client.delete(f"/api/v1/payments/{intent_id}", headers=get_auth_headers(ARTIST))
    response = test_client.delete(f"/api/v1/payments/{intent_id}", headers=headers)
    missing = test_client.get(f"/api/v1/payments/{intent_id}", headers=headers)

    assert forbidden.status_code == 403
    assert response.status_code == 204
    assert missing.status_code == 404
    db.expire_all()
    assert db.get(TattooOffer, offer.id).status == OfferStatus.ACCEPTED.value


def test_delete_processing_payment_is_rejected(test_client: TestClient, db: Session) -> None:
    intent = _create_intent(test_client).json()["payment_intent"]

    response = test_client.delete(
        f"/api/v1/payments/{intent['id']}", headers=get_auth_headers(CLIENT)
    )

    assert response.status_code == 400
    assert response.json()["error"]["category"] == "validation_error"


def test_payment_client_config(test_client: TestClient, db: Session) -> None:
    headers = get_auth_headers(CLIENT)

    stripe_config = test_client.get("/api/v1/payments/stripe/config", headers=headers)
    paypal_config = test_client.get("/api/v1/payments/paypal/config", headers=headers)
    anonymous = test_client.get("/api/v1/payments/stripe/config")

    assert stripe_config.status_code == 200
    assert stripe_config.json()["public_key"] == "pk_test_stripe"
    assert paypal_config.status_code == 500
    assert paypal_config.json()["error"]["category"] == "external_service_error"
    assert anonymous.status_code == 401
