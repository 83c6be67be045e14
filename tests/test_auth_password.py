import jwt
import pytest

from storefront import auth, models

PASSWORD = "SecurePass123!"


def register(client, email="new@example.com", password=PASSWORD, **extra):
    return client.post("/auth/register", json={"email": email, "password": password, **extra})


def test_password_hash_roundtrip():
    hashed = auth.hash_password(PASSWORD)
    assert hashed != PASSWORD
    assert auth.verify_password(PASSWORD, hashed)
    assert not auth.verify_password("wrong", hashed)


def test_register_then_login_returns_same_subject(client, settings):
    r = register(client, first_name="John", last_name="Doe")
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "Registration successful"
    assert body["user"]["role"] == "user"
    assert "password" not in body["user"] and "password_hash" not in body["user"]
    user_id = body["user"]["id"]

    r2 = client.post("/auth/login", json={"email": "new@example.com", "password": PASSWORD})
    assert r2.status_code == 200
    claims = auth.decode_access_token(r2.json()["access_token"], settings.jwt_secret)
    assert claims["sub"] == str(user_id)
    assert claims["email"] == "new@example.com"
    assert claims["role"] == "user"


def test_duplicate_email_conflicts_without_new_row(client, db_session):
    assert register(client).status_code == 201
    r = register(client, email="NEW@example.com")
    assert r.status_code == 409
    assert "already exists" in r.json()["detail"]
    assert db_session.query(models.User).count() == 1


@pytest.mark.parametrize(
    "email,password",
    [("nobody@example.com", PASSWORD), ("new@example.com", "WrongPass123!")],
)
def test_login_failures_share_one_message(client, email, password):
    register(client)
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"


def test_inactive_account_cannot_login(client, db_session):
    register(client)
    user = db_session.query(models.User).filter_by(email="new@example.com").one()
    user.is_active = False
    db_session.commit()

    r = client.post("/auth/login", json={"email": "new@example.com", "password": PASSWORD})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"


@pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "NoDigitsHere!", "NoSpecial123"])
def test_weak_password_rejected_at_boundary(client, password):
    r = register(client, password=password)
    assert r.status_code == 400
    assert any(e["field"] == "password" for e in r.json()["detail"])


def test_invalid_email_rejected(client):
    r = register(client, email="not-an-email")
    assert r.status_code == 400


def test_profile_requires_token(client):
    r = client.get("/auth/profile")
    assert r.status_code == 401


def test_profile_returns_current_user(client):
    token = register(client).json()["access_token"]
    r = client.get("/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["email"] == "new@example.com"
    assert "password_hash" not in r.json()


def test_profile_rejects_bad_and_expired_tokens(client, settings, db_session):
    body = register(client).json()
    r = client.get("/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    expired = auth.create_access_token(body["user"]["id"], "new@example.com", "user", settings.jwt_secret, expires_delta=-10)
    r2 = client.get("/auth/profile", headers={"Authorization": f"Bearer {expired}"})
    assert r2.status_code == 401

    forged = jwt.encode({"sub": str(body["user"]["id"]), "role": "admin"}, "another-secret-that-is-long-enough-for-hs256", algorithm="HS256")
    r3 = client.get("/auth/profile", headers={"Authorization": f"Bearer {forged}"})
    assert r3.status_code == 401


def test_token_for_deactivated_user_is_rejected(client, db_session):
    token = register(client).json()["access_token"]
    user = db_session.query(models.User).filter_by(email="new@example.com").one()
    user.is_active = False
    db_session.commit()

    r = client.get("/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_unknown_email_still_checks_a_password_hash(client, monkeypatch):
    checked = []
    real_verify = auth.verify_password

    def recording_verify(plain, hashed):
        checked.append(hashed)
        return real_verify(plain, hashed)

    monkeypatch.setattr(auth, "verify_password", recording_verify)
    r = client.post("/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"
    assert len(checked) == 1
