"""HTTP tests for the authentication endpoints."""

import pytest
from httpx import AsyncClient

from authcore.config.settings import settings
from authcore.features.auth import totp
from authcore.features.auth.jwt_utils import (
    create_email_verification_token,
    create_password_reset_token,
    create_refresh_token,
)
from authcore.features.auth.ledger import RefreshTokenLedger
from authcore.shared.rate_limit import limiter

PASSWORD = "SecurePass123!"
API = "/api/auth"


async def _login(client: AsyncClient, email: str, password: str = PASSWORD, **extra) -> dict:
    response = await client.post(f"{API}/login", json={"email": email, "password": password, **extra})
    assert response.status_code == 200, response.text
    return response.json()


class TestRegister:
    async def test_register_success(self, client, captcha, notifier):
        response = await client.post(
            f"{API}/register",
            json={
                "email": "new@example.com",
                "password": PASSWORD,
                "confirm_password": PASSWORD,
                "first_name": "New",
                "last_name": "User",
                "recaptcha_token": "ok",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new@example.com"
        assert data["email_verified"] is False
        assert data["provider"] == "local"
        assert "hashed_password" not in data
        assert notifier.verifications == ["new@example.com"]

    async def test_weak_password(self, client):
        response = await client.post(
            f"{API}/register",
            json={
                "email": "new@example.com",
                "password": "NoSpecial123",
                "confirm_password": "NoSpecial123",
                "first_name": "New",
                "last_name": "User",
            },
        )

        assert response.status_code == 422

    async def test_password_mismatch(self, client):
        response = await client.post(
            f"{API}/register",
            json={
                "email": "new@example.com",
                "password": PASSWORD,
                "confirm_password": "SecurePass123?",
                "first_name": "New",
                "last_name": "User",
            },
        )

        assert response.status_code == 422

    async def test_captcha_failure(self, client, captcha):
        captcha.result = False

        response = await client.post(
            f"{API}/register",
            json={
                "email": "new@example.com",
                "password": PASSWORD,
                "confirm_password": PASSWORD,
                "first_name": "New",
                "last_name": "User",
            },
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "reCAPTCHA verification failed"

    async def test_duplicate_email(self, client, make_account):
        await make_account(email="taken@example.com")

        response = await client.post(
            f"{API}/register",
            json={
                "email": "Taken@Example.com",
                "password": PASSWORD,
                "confirm_password": PASSWORD,
                "first_name": "New",
                "last_name": "User",
            },
        )

        assert response.status_code == 409


class TestLoginEndpoint:
    async def test_login_shape(self, client, make_account):
        account = await make_account(email="a@x.com")

        data = await _login(client, "a@x.com")

        assert data["token_type"] == "Bearer"
        assert data["expires_in"] == 900000
        assert data["requires_two_factor"] is False
        assert data["user"]["id"] == account.id
        assert data["access_token"] and data["refresh_token"]

    async def test_invalid_credentials(self, client, make_account):
        await make_account(email="a@x.com")

        response = await client.post(f"{API}/login", json={"email": "a@x.com", "password": "WrongPass123!"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_lockout_over_http(self, client, make_account):
        await make_account(email="a@x.com")

        for _ in range(5):
            response = await client.post(f"{API}/login", json={"email": "a@x.com", "password": "WrongPass123!"})
            assert response.status_code == 401

        response = await client.post(f"{API}/login", json={"email": "a@x.com", "password": PASSWORD})
        assert response.status_code == 403

    async def test_two_factor_continuation(self, client, make_account):
        secret = totp.generate_secret()
        await make_account(email="a@x.com", totp_secret=secret, totp_enabled=True)

        pending = await _login(client, "a@x.com")
        assert pending["requires_two_factor"] is True
        assert pending["access_token"] is None

        done = await _login(client, "a@x.com", totp_code=totp.current_code(secret))
        assert done["requires_two_factor"] is False
        assert done["access_token"]

    async def test_client_ip_from_trusted_proxy(self, client, make_account, session, monkeypatch):
        monkeypatch.setattr(settings, "trusted_proxies", "127.0.0.1, 10.0.0.0/8")
        await make_account(email="a@x.com")

        response = await client.post(
            f"{API}/login",
            json={"email": "a@x.com", "password": PASSWORD},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )

        record = await RefreshTokenLedger.get(session, response.json()["refresh_token"])
        assert record.created_by_ip == "203.0.113.7"

    async def test_forwarded_header_ignored_without_trusted_proxy(self, client, make_account, session):
        await make_account(email="a@x.com")

        response = await client.post(
            f"{API}/login",
            json={"email": "a@x.com", "password": PASSWORD},
            headers={"X-Forwarded-For": "203.0.113.7"},
        )

        record = await RefreshTokenLedger.get(session, response.json()["refresh_token"])
        assert record.created_by_ip == "127.0.0.1"

    async def test_oversized_forwarded_header_falls_back_to_peer(self, client, make_account, session, monkeypatch):
        monkeypatch.setattr(settings, "trusted_proxies", "127.0.0.1")
        await make_account(email="a@x.com")

        response = await client.post(
            f"{API}/login",
            json={"email": "a@x.com", "password": PASSWORD},
            headers={"X-Forwarded-For": "x" * 200},
        )

        assert response.status_code == 200
        record = await RefreshTokenLedger.get(session, response.json()["refresh_token"])
        assert record.created_by_ip == "127.0.0.1"


class TestRefreshEndpoint:
    async def test_rotation_and_reuse(self, client, make_account):
        await make_account(email="a@x.com")
        login = await _login(client, "a@x.com")

        rotated = await client.post(f"{API}/refresh", json={"refresh_token": login["refresh_token"]})
        assert rotated.status_code == 200
        assert rotated.json()["expires_in"] == 900000
        assert rotated.json()["refresh_token"] != login["refresh_token"]

        reused = await client.post(f"{API}/refresh", json={"refresh_token": login["refresh_token"]})
        assert reused.status_code == 401
        assert reused.json()["detail"] == "Refresh token has already been used"

        # The reuse revoked the rotated token as well
        after = await client.post(f"{API}/refresh", json={"refresh_token": rotated.json()["refresh_token"]})
        assert after.status_code == 401

    async def test_unknown_refresh_token(self, client, make_account):
        account = await make_account()

        # Validly signed but never persisted
        response = await client.post(f"{API}/refresh", json={"refresh_token": create_refresh_token(account.id)})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid refresh token"


class TestLogoutEndpoints:
    async def test_logout(self, client, make_account):
        await make_account(email="a@x.com")
        login = await _login(client, "a@x.com")

        first = await client.post(f"{API}/logout", json={"refresh_token": login["refresh_token"]})
        second = await client.post(f"{API}/logout", json={"refresh_token": login["refresh_token"]})

        assert first.status_code == 200
        assert first.json()["message"] == "Successfully logged out"
        assert second.status_code == 200
        assert second.json()["message"] == "Token already revoked or not found"

    async def test_logout_all_requires_bearer(self, client):
        response = await client.post(f"{API}/logout-all")

        assert response.status_code in (401, 403)

    async def test_logout_all(self, client, make_account):
        await make_account(email="a@x.com")
        first = await _login(client, "a@x.com")
        second = await _login(client, "a@x.com")

        response = await client.post(
            f"{API}/logout-all", headers={"Authorization": f"Bearer {second['access_token']}"}
        )
        assert response.status_code == 200

        for login in (first, second):
            refreshed = await client.post(f"{API}/refresh", json={"refresh_token": login["refresh_token"]})
            assert refreshed.status_code == 401

    async def test_refresh_token_is_not_a_bearer_credential(self, client, make_account):
        await make_account(email="a@x.com")
        login = await _login(client, "a@x.com")

        response = await client.post(
            f"{API}/logout-all", headers={"Authorization": f"Bearer {login['refresh_token']}"}
        )

        assert response.status_code == 401


class TestPasswordEndpoints:
    async def test_forgot_password_does_not_reveal_existence(self, client, make_account, notifier):
        await make_account(email="a@x.com")

        known = await client.post(f"{API}/forgot-password", json={"email": "a@x.com"})
        unknown = await client.post(f"{API}/forgot-password", json={"email": "nobody@x.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert notifier.password_resets == ["a@x.com"]

    async def test_reset_password(self, client, make_account):
        account = await make_account(email="a@x.com")
        token = create_password_reset_token(account.id, account.hashed_password)

        response = await client.post(
            f"{API}/reset-password",
            json={"token": token, "new_password": "BrandNew456$", "confirm_password": "BrandNew456$"},
        )
        assert response.status_code == 200

        await _login(client, "a@x.com", "BrandNew456$")

        replay = await client.post(
            f"{API}/reset-password",
            json={"token": token, "new_password": "Another789%", "confirm_password": "Another789%"},
        )
        assert replay.status_code == 401

    async def test_reset_password_rejects_garbage_token(self, client):
        response = await client.post(
            f"{API}/reset-password",
            json={"token": "garbage", "new_password": "BrandNew456$", "confirm_password": "BrandNew456$"},
        )

        assert response.status_code == 401


class TestEmailVerificationEndpoints:
    async def test_resend_and_verify(self, client, make_account, notifier):
        account = await make_account(email="a@x.com", email_verified=False)

        resend = await client.post(f"{API}/resend-verification", json={"email": "a@x.com"})
        assert resend.status_code == 200
        assert notifier.verifications == ["a@x.com"]

        token = create_email_verification_token(account.id, account.email)
        verified = await client.post(f"{API}/verify-email", json={"token": token})
        assert verified.status_code == 200

        login = await _login(client, "a@x.com")
        me = await client.get("/api/accounts/me", headers={"Authorization": f"Bearer {login['access_token']}"})
        assert me.json()["email_verified"] is True


class TestTwoFactorEndpoints:
    async def test_full_cycle(self, client, make_account, auth_headers):
        account = await make_account(email="a@x.com")
        headers = auth_headers(account)

        setup = await client.post(f"{API}/2fa/enable", headers=headers)
        assert setup.status_code == 200
        secret = setup.json()["secret"]
        assert setup.json()["provisioning_uri"].startswith("otpauth://totp/")

        bad = await client.post(f"{API}/2fa/confirm", headers=headers, json={"code": "12ab56"})
        assert bad.status_code == 400

        confirm = await client.post(f"{API}/2fa/confirm", headers=headers, json={"code": totp.current_code(secret)})
        assert confirm.status_code == 200

        pending = await _login(client, "a@x.com")
        assert pending["requires_two_factor"] is True

        again = await client.post(f"{API}/2fa/enable", headers=headers)
        assert again.status_code == 400

        disable = await client.post(f"{API}/2fa/disable", headers=headers, json={"code": totp.current_code(secret)})
        assert disable.status_code == 200

        assert (await _login(client, "a@x.com"))["requires_two_factor"] is False

    async def test_confirm_before_enable(self, client, make_account, auth_headers):
        account = await make_account()

        response = await client.post(f"{API}/2fa/confirm", headers=auth_headers(account), json={"code": "123456"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Two-factor authentication has not been initialized"


class TestRateLimit:
    @pytest.fixture
    def rate_limited(self, monkeypatch):
        monkeypatch.setattr(limiter, "enabled", True)
        limiter.reset()
        yield
        limiter.reset()

    async def test_login_is_rate_limited(self, client, rate_limited):
        statuses = []
        for _ in range(15):
            response = await client.post(
                f"{API}/login",
                json={"email": "nobody@x.com", "password": "WrongPass123!"},
                headers={"X-Forwarded-For": "198.51.100.23"},
            )
            statuses.append(response.status_code)

        assert statuses[0] == 401
        assert 429 in statuses
        assert response.json()["detail"] == "Rate limit exceeded"

    async def test_rotating_forwarded_header_does_not_reset_limit(self, client, rate_limited):
        statuses = []
        for i in range(15):
            response = await client.post(
                f"{API}/login",
                json={"email": "nobody@x.com", "password": "WrongPass123!"},
                headers={"X-Forwarded-For": f"198.51.100.{i + 1}"},
            )
            statuses.append(response.status_code)

        assert 429 in statuses


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
