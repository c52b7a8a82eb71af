import asyncio
from datetime import timedelta

from auth import utils as auth_utils
from auth.utils import Identity, create_access_token, decode_access_token


SELLER_FORM = {
    "firstName": "Ravi",
    "lastName": "Kumar",
    "email": "ravi@shop.in",
    "mobileNumber": "1234567890",
    "password": "secret1",
    "shopName": "Ravi Electronics",
    "shopAddress": "4 Station Road",
}


def test_buyer_registers_and_logs_in(client):
    response = client.post("/api/register", json={
        "firstName": "Asha", "lastName": "Rao", "email": "a@x.com", "password": "secret1",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["token"]
    assert body["user"]["role"] == "buyer"
    assert "password" not in body["user"]

    response = client.post("/api/login", json={"email": "a@x.com", "password": "secret1"})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["user"]["role"] == "buyer"
    identity = decode_access_token(body["token"])
    assert identity.role == "buyer"
    assert identity.id == body["user"]["id"]


def test_email_is_stored_lowercase(client):
    client.post("/api/register", json={
        "firstName": "Asha", "lastName": "Rao", "email": "Mixed@X.com", "password": "secret1",
    })
    response = client.post("/api/login", json={"email": "mixed@x.com", "password": "secret1"})
    assert response.status_code == 200


def test_registration_reports_every_violated_rule(client):
    response = client.post("/api/register", json={"email": "not-an-email", "password": "123"})
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation errors"
    assert "firstName is required" in body["errors"]
    assert "lastName is required" in body["errors"]
    assert "Please include a valid email" in body["errors"]
    assert "Password must be at least 6 characters" in body["errors"]


def test_buyer_registration_rejects_email_of_a_seller(client, account):
    account("seller", email="taken@x.com")
    response = client.post("/api/register", json={
        "firstName": "Asha", "lastName": "Rao", "email": "taken@x.com", "password": "secret1",
    })
    assert response.status_code == 400
    assert "(as a seller)" in response.json()["message"]


def test_seller_registration_is_pending_and_cannot_log_in(client):
    response = client.post("/api/seller/register", json=SELLER_FORM)
    assert response.status_code == 201
    seller = response.json()["seller"]
    assert seller["isApproved"] is False
    assert seller["role"] == "seller"

    response = client.post("/api/login", json={"email": SELLER_FORM["email"], "password": "secret1"})
    assert response.status_code == 403
    assert "pending admin approval" in response.json()["message"]


def test_seller_registration_rejects_reused_mobile_number(client):
    assert client.post("/api/seller/register", json=SELLER_FORM).status_code == 201

    second = dict(SELLER_FORM, email="other@shop.in", shopName="Another Shop")
    response = client.post("/api/seller/register", json=second)
    assert response.status_code == 400
    assert "mobile number" in response.json()["message"]


def test_seller_registration_rejects_taken_shop_name(client):
    client.post("/api/seller/register", json=SELLER_FORM)
    second = dict(SELLER_FORM, email="other@shop.in", mobileNumber="1111111111")
    response = client.post("/api/seller/register", json=second)
    assert response.status_code == 400
    assert "shop name" in response.json()["message"]


def test_seller_registration_validates_mobile_and_gst(client):
    form = dict(SELLER_FORM, mobileNumber="12345", gstNumber="BADGST")
    response = client.post("/api/seller/register", json=form)
    assert response.status_code == 400
    errors = response.json()["errors"]
    assert "Mobile number is required and must be 10 digits" in errors
    assert "Please enter a valid GST number" in errors


def test_approved_seller_login_includes_shop(client, account):
    account("seller", email="open@x.com", shopName="Open Shop", isApproved=True)
    response = client.post("/api/login", json={"email": "open@x.com", "password": "secret1"})
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["shopName"] == "Open Shop"
    assert user["isApproved"] is True


def test_login_falls_through_to_admins(client, account):
    account("admin", email="boss@x.com")
    response = client.post("/api/login", json={"email": "boss@x.com", "password": "secret1"})
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"


def test_login_rejects_wrong_password(client, account):
    account("buyer", email="b@x.com")
    response = client.post("/api/login", json={"email": "b@x.com", "password": "wrong-one"})
    assert response.status_code == 400
    assert "Invalid Credentials" in response.json()["message"]


def test_missing_token_is_unauthenticated(client):
    response = client.get("/api/users/me")
    assert response.status_code == 401
    assert response.json()["message"] == "Not authorized, no token"


def test_expired_token_is_reported_separately(client, account):
    buyer = account("buyer")
    token = create_access_token(Identity(id=buyer["id"], role="buyer"), expires_delta=timedelta(seconds=-5))
    response = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Not authorized, token expired"


def test_garbage_token_fails(client):
    response = client.get("/api/users/me", headers={"Authorization": "Bearer not.a.token"})
    assert response.status_code == 401
    assert response.json()["message"] == "Not authorized, token failed"


def test_role_gate_forbids_other_roles(client, account):
    buyer = account("buyer")
    response = client.get("/api/admin/customers", headers=buyer["headers"])
    assert response.status_code == 403


def test_profile_of_current_user(client, account):
    seller = account("seller", shopName="Corner Store")
    response = client.get("/api/users/me", headers=seller["headers"])
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["id"] == seller["id"]
    assert user["shopName"] == "Corner Store"
    assert "password" not in user


def test_password_hashing_runs_off_the_event_loop(client, monkeypatch):
    threads = []
    real_hash, real_verify = auth_utils.get_password_hash, auth_utils.verify_password

    def where():
        try:
            asyncio.get_running_loop()
            return "event loop"
        except RuntimeError:
            return "worker"

    def recording_hash(password):
        threads.append(where())
        return real_hash(password)

    def recording_verify(plain, hashed):
        threads.append(where())
        return real_verify(plain, hashed)

    monkeypatch.setattr(auth_utils, "get_password_hash", recording_hash)
    monkeypatch.setattr(auth_utils, "verify_password", recording_verify)

    client.post("/api/register", json={
        "firstName": "Asha", "lastName": "Rao", "email": "loop@x.com", "password": "secret1",
    })
    client.post("/api/seller/register", json=dict(SELLER_FORM, email="loopshop@x.com"))
    client.post("/api/login", json={"email": "loop@x.com", "password": "secret1"})

    assert threads == ["worker", "worker", "worker"]
