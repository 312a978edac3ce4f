"""HTTP tests for the auth and user routers."""

import pytest

from models.helpers import EmailType

from tests.fakes import ADMIN_PASSWORD, PASSWORD

AUTH = "/api/v1/auth"
NOT_AUTHORIZED = "Not authorized to access this route"


def _register(client, email="jane@example.com", password=PASSWORD):
    return client.post(
        f"{AUTH}/register",
        json={"firstName": "Jane", "lastName": "Doe", "email": email, "password": password},
    )


def _login(client, email="jane@example.com", password=PASSWORD):
    return client.post(f"{AUTH}/login", json={"email": email, "password": password})


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_register_me_refresh_scenario(client):
    response = _register(client, password="Sup3rSecure!")
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    access_1, refresh_1 = body["data"]["token"], body["data"]["refreshToken"]
    assert body["data"]["tokenType"] == "Bearer"
    assert "password" not in body["data"]["user"]

    me = client.get(f"{AUTH}/me", headers=_bearer(access_1))
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "jane@example.com"

    refreshed = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh_1})
    assert refreshed.status_code == 200
    access_2, refresh_2 = refreshed.json()["data"]["token"], refreshed.json()["data"]["refreshToken"]
    assert refresh_2 != refresh_1
    assert access_2 != access_1

    replayed = client.post(f"{AUTH}/refresh-token", json={"refreshToken": refresh_1})
    assert replayed.status_code == 401
    assert replayed.json()["success"] is False


def test_stored_password_is_hashed(client, repository):
    assert _register(client).status_code == 201
    stored = next(iter(repository.records.values()))
    assert stored.password != PASSWORD


def test_duplicate_registration_any_case(client):
    assert _register(client).status_code == 201

    response = _register(client, email="JANE@Example.com")
    assert response.status_code == 400
    assert response.json()["message"] == "User already exists with this email"


@pytest.mark.parametrize("password", ["password", "12345678", "PASSWORD1"])
def test_weak_passwords_are_rejected(client, password):
    response = _register(client, password=password)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert any(error["field"] == "password" for error in body["errors"])


def test_policy_compliant_password_is_accepted(client):
    assert _register(client, password="Password1!").status_code == 201


def test_missing_fields_are_listed(client):
    response = client.post(f"{AUTH}/register", json={"email": "not-an-email"})

    assert response.status_code == 400
    fields = {error["field"] for error in response.json()["errors"]}
    assert {"firstName", "lastName", "email", "password"} <= fields


def test_login(client):
    _register(client)

    response = _login(client, email="Jane@Example.com")
    assert response.status_code == 200
    assert response.json()["data"]["user"]["email"] == "jane@example.com"


def test_invalid_credentials_are_ambiguous(client):
    _register(client)

    wrong_password = _login(client, password="Wr0ngPassword")
    unknown_email = _login(client, email="nobody@example.com")

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json()["message"] == unknown_email.json()["message"] == "Invalid credentials"


def test_sixth_login_attempt_is_rate_limited(client):
    _register(client)
    for _ in range(5):
        assert _login(client, password="Wr0ngPassword").status_code == 401

    response = _login(client)

    assert response.status_code == 429
    retry_after = int(response.headers["Retry-After"])
    assert 0 < retry_after <= 900
    assert response.json()["retryAfter"] == retry_after


class TestGate:
    def test_me_without_token(self, client):
        response = client.get(f"{AUTH}/me")

        assert response.status_code == 401
        assert response.json()["message"] == NOT_AUTHORIZED
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_me_with_malformed_token(self, client):
        response = client.get(f"{AUTH}/me", headers=_bearer("not.a.jwt"))
        assert response.status_code == 401
        assert response.json()["message"] == NOT_AUTHORIZED

    def test_logged_out_token_is_rejected_immediately(self, client):
        data = _register(client).json()["data"]
        assert client.get(f"{AUTH}/me", headers=_bearer(data["token"])).status_code == 200

        logout = client.post(f"{AUTH}/logout", headers=_bearer(data["token"]), json={"refreshToken": data["refreshToken"]})
        assert logout.status_code == 200

        response = client.get(f"{AUTH}/me", headers=_bearer(data["token"]))
        assert response.status_code == 401
        assert response.json()["message"] == NOT_AUTHORIZED

        refresh = client.post(f"{AUTH}/refresh-token", json={"refreshToken": data["refreshToken"]})
        assert refresh.status_code == 401

    def test_logout_is_idempotent(self, client):
        data = _register(client).json()["data"]
        headers = _bearer(data["token"])
        body = {"refreshToken": data["refreshToken"]}

        assert client.post(f"{AUTH}/logout", headers=headers, json=body).status_code == 200
        assert client.post(f"{AUTH}/logout", headers=headers, json=body).status_code == 200

    def test_logout_without_anything(self, client):
        response = client.post(f"{AUTH}/logout")
        assert response.status_code == 200
        assert response.json()["message"] == "Logout successful"

    def test_status_is_optional(self, client):
        anonymous = client.get(f"{AUTH}/status")
        assert anonymous.status_code == 200
        assert anonymous.json()["data"]["authenticated"] is False

        garbage = client.get(f"{AUTH}/status", headers=_bearer("garbage"))
        assert garbage.status_code == 200
        assert garbage.json()["data"]["authenticated"] is False

        token = _register(client).json()["data"]["token"]
        signed_in = client.get(f"{AUTH}/status", headers=_bearer(token))
        assert signed_in.json()["data"]["authenticated"] is True
        assert signed_in.json()["data"]["user"]["email"] == "jane@example.com"


class TestPasswordFlows:
    def test_change_password(self, client):
        token = _register(client).json()["data"]["token"]

        response = client.put(
            f"{AUTH}/change-password",
            headers=_bearer(token),
            json={"currentPassword": PASSWORD, "newPassword": "N3wPassword1"},
        )
        assert response.status_code == 200
        assert _login(client, password="N3wPassword1").status_code == 200

    def test_change_password_with_wrong_current_password(self, client):
        token = _register(client).json()["data"]["token"]

        response = client.put(
            f"{AUTH}/change-password",
            headers=_bearer(token),
            json={"currentPassword": "Wr0ngPassword", "newPassword": "N3wPassword1"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Current password is incorrect"

    def test_change_password_requires_authentication(self, client):
        response = client.put(
            f"{AUTH}/change-password",
            json={"currentPassword": PASSWORD, "newPassword": "N3wPassword1"},
        )
        assert response.status_code == 401

    def test_forgot_password_does_not_reveal_accounts(self, client, notifier):
        _register(client)

        known = client.post(f"{AUTH}/forgot-password", json={"email": "jane@example.com"})
        unknown = client.post(f"{AUTH}/forgot-password", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len([n for n in notifier.sent if n.kind == EmailType.PASSWORD_RESET]) == 1

    def test_reset_password(self, client, notifier):
        _register(client)
        client.post(f"{AUTH}/forgot-password", json={"email": "jane@example.com"})
        token = notifier.last(EmailType.PASSWORD_RESET).token

        response = client.put(f"{AUTH}/reset-password/{token}", json={"password": "N3wPassword1"})
        assert response.status_code == 200
        assert response.json()["data"]["token"]

        reused = client.put(f"{AUTH}/reset-password/{token}", json={"password": "An0therPassword"})
        assert reused.status_code == 400

    def test_reset_password_with_unknown_token(self, client):
        response = client.put(f"{AUTH}/reset-password/deadbeef", json={"password": "N3wPassword1"})
        assert response.status_code == 400


class TestEmailVerification:
    def test_verify_email(self, client, notifier):
        _register(client)
        token = notifier.last(EmailType.VERIFICATION).token

        assert client.get(f"{AUTH}/verify-email/{token}").status_code == 200
        assert client.get(f"{AUTH}/verify-email/{token}").status_code == 400

        again = client.post(f"{AUTH}/resend-verification", json={"email": "jane@example.com"})
        assert again.status_code == 400
        assert again.json()["message"] == "Email is already verified"

    def test_resend_verification(self, client, notifier):
        _register(client)

        response = client.post(f"{AUTH}/resend-verification", json={"email": "jane@example.com"})
        assert response.status_code == 200
        assert len([n for n in notifier.sent if n.kind == EmailType.VERIFICATION]) == 2

    def test_resend_verification_for_unknown_email(self, client):
        response = client.post(f"{AUTH}/resend-verification", json={"email": "nobody@example.com"})
        assert response.status_code == 404


class TestUserAdministration:
    def test_admin_can_deactivate_and_reactivate(self, client, admin):
        user = _register(client).json()["data"]
        admin_token = _login(client, email=admin.email, password=ADMIN_PASSWORD).json()["data"]["token"]

        response = client.patch(
            f"/api/v1/users/{user['user']['id']}/status",
            headers=_bearer(admin_token),
            json={"isActive": False},
        )
        assert response.status_code == 200
        assert response.json()["data"]["isActive"] is False

        me = client.get(f"{AUTH}/me", headers=_bearer(user["token"]))
        assert me.status_code == 401
        assert me.json()["message"] == "Account is deactivated"
        assert _login(client).status_code == 401

        client.patch(
            f"/api/v1/users/{user['user']['id']}/status",
            headers=_bearer(admin_token),
            json={"isActive": True},
        )
        assert client.get(f"{AUTH}/me", headers=_bearer(user["token"])).status_code == 200

    def test_customer_is_forbidden(self, client):
        user = _register(client).json()["data"]

        response = client.patch(
            f"/api/v1/users/{user['user']['id']}/status",
            headers=_bearer(user["token"]),
            json={"isActive": False},
        )
        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_unknown_user(self, client, admin):
        admin_token = _login(client, email=admin.email, password=ADMIN_PASSWORD).json()["data"]["token"]

        response = client.patch(
            "/api/v1/users/000000000000000000000000/status",
            headers=_bearer(admin_token),
            json={"isActive": False},
        )
        assert response.status_code == 404


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ok"
