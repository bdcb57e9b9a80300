import json

from fastapi.testclient import TestClient

from helpers import WEBHOOK_SECRET, FakeGateway, add_user, fetch, make_settings, setup_test_db

from rideshare.main import create_app
from rideshare.models import Payment
from rideshare.services.webhook_service import SIGNATURE_HEADER, sign_payload


def build_client(tmp_path, gateway=None):
    database = setup_test_db(tmp_path)
    app = create_app(settings=make_settings(tmp_path), database=database, gateway=gateway or FakeGateway())
    return TestClient(app), database


def as_user(user_id):
    return {"X-User-Id": user_id}


def ride_body():
    return {
        "departure_location_name": "Moscow",
        "arrival_location_name": "Tver",
        "departure_date": "2099-06-01",
        "departure_time": "08:15",
        "total_seats": 2,
    }


def signed(payload):
    raw = json.dumps(payload).encode()
    return raw, {SIGNATURE_HEADER: sign_payload(WEBHOOK_SECRET, raw), "Content-Type": "application/json"}


def test_ride_lifecycle_over_http(tmp_path):
    client, database = build_client(tmp_path)
    creator = add_user(database)
    rider = add_user(database)
    saver = add_user(database, payment_method_id="pm_saved")

    with client:
        response = client.post("/api/rides", json=ride_body(), headers=as_user(creator))
        assert response.status_code == 201
        ride_id = response.json()["data"]["id"]

        response = client.post(f"/api/rides/{ride_id}/join", headers=as_user(rider))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "pending_payment"

        response = client.post(f"/api/rides/{ride_id}/create-payment-intent", headers=as_user(rider))
        assert response.status_code == 200
        intent = response.json()["data"]
        assert intent["client_handle"]
        assert intent["amount"] == 200

        payment = fetch(database, Payment, intent["payment_id"])
        raw, headers = signed(
            {"type": "notification", "event": "payment.succeeded", "object": {"id": payment.intent_id}}
        )
        response = client.post("/api/payments/webhook", content=raw, headers=headers)
        assert response.status_code == 200
        assert response.json()["action"] == "charge_succeeded"

        response = client.get(f"/api/rides/{ride_id}/my-status", headers=as_user(rider))
        assert response.json()["data"]["status"] == "active"

        response = client.post(f"/api/rides/{ride_id}/join-automatic", headers=as_user(saver))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "active"

        response = client.get(f"/api/rides/{ride_id}", headers=as_user(rider))
        details = response.json()["data"]
        assert details["places_taken"] == 2
        assert details["available_seats"] == 0

        response = client.post(f"/api/rides/{ride_id}/join", headers=as_user(add_user(database)))
        assert response.status_code == 409
        assert response.json() == {"status": "error", "kind": "conflict", "message": "ride is already full"}

        response = client.get(f"/api/rides/{ride_id}/contacts", headers=as_user(rider))
        contacts = response.json()["data"]
        assert [c["user_id"] for c in contacts] == [creator, rider, saver]
        assert contacts[0]["is_creator"] is True

        response = client.delete(f"/api/rides/{ride_id}", headers=as_user(creator))
        assert response.status_code == 200
        assert response.json()["data"] == {"was_cancelled": True}

        response = client.get(f"/api/rides/{ride_id}/contacts", headers=as_user(rider))
        assert response.status_code == 403


def test_identity_required(tmp_path):
    client, database = build_client(tmp_path)

    with client:
        response = client.post("/api/rides/some-ride/join")

    assert response.status_code == 401
    assert response.json()["kind"] == "unauthenticated"


def test_error_statuses(tmp_path):
    client, database = build_client(tmp_path)
    creator = add_user(database)
    rider = add_user(database)

    with client:
        assert client.get("/api/rides/missing", headers=as_user(rider)).status_code == 404

        bad = dict(ride_body(), total_seats=9)
        response = client.post("/api/rides", json=bad, headers=as_user(creator))
        assert response.status_code == 400
        assert response.json()["kind"] == "validation"

        response = client.post("/api/rides", json={"total_seats": 2}, headers=as_user(creator))
        assert response.status_code == 400

        ride_id = client.post("/api/rides", json=ride_body(), headers=as_user(creator)).json()["data"]["id"]

        response = client.post(f"/api/rides/{ride_id}/join", headers=as_user(creator))
        assert response.status_code == 409

        response = client.post(f"/api/rides/{ride_id}/join-automatic", headers=as_user(rider))
        assert response.status_code == 402
        assert response.json()["kind"] == "payment_required"

        response = client.post(f"/api/rides/{ride_id}/leave", headers=as_user(rider))
        assert response.status_code == 409

        response = client.delete(f"/api/rides/{ride_id}", headers=as_user(rider))
        assert response.status_code == 403

        response = client.delete(f"/api/rides/{ride_id}", headers=as_user(creator))
        assert response.json()["data"] == {"was_cancelled": False}


def test_declined_automatic_join_is_402(tmp_path):
    client, database = build_client(tmp_path, gateway=FakeGateway(saved_method_status="canceled"))
    creator = add_user(database)
    rider = add_user(database, payment_method_id="pm_saved")

    with client:
        ride_id = client.post("/api/rides", json=ride_body(), headers=as_user(creator)).json()["data"]["id"]
        response = client.post(f"/api/rides/{ride_id}/join-automatic", headers=as_user(rider))
        status = client.get(f"/api/rides/{ride_id}/my-status", headers=as_user(rider))

    assert response.status_code == 402
    assert response.json()["kind"] == "payment_failed"
    assert status.json()["data"]["status"] == "not_participant"


def test_webhook_signature_over_http(tmp_path):
    client, database = build_client(tmp_path)
    raw = json.dumps({"event": "payment.succeeded", "object": {"id": "pay_x"}}).encode()

    with client:
        rejected = client.post("/api/payments/webhook", content=raw, headers={SIGNATURE_HEADER: "nope"})
        latin = client.post("/api/payments/webhook", content=raw, headers={SIGNATURE_HEADER: "caf\u00e9".encode("latin-1")})
        unsigned = client.post("/api/payments/webhook", content=raw)
        accepted = client.post(
            "/api/payments/webhook", content=raw, headers={SIGNATURE_HEADER: sign_payload(WEBHOOK_SECRET, raw)}
        )

    assert rejected.status_code == 400
    assert latin.status_code == 400
    assert latin.json()["kind"] == "webhook_rejected"
    assert unsigned.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json()["action"] == "unknown_intent"


def test_payment_setup_over_http(tmp_path):
    gateway = FakeGateway()
    client, database = build_client(tmp_path, gateway=gateway)
    user_id = add_user(database)

    with client:
        response = client.post("/api/payments/setup", headers=as_user(user_id))

    assert response.status_code == 200
    assert response.json()["data"]["client_handle"]
    assert gateway.calls[0][0] == "setup"


def test_health(tmp_path):
    client, database = build_client(tmp_path)

    with client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}
