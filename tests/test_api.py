"""Tests for the HTTP API."""

import typing as t
from datetime import timedelta as td

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from expiro.core.auth import create_access_token
from expiro.core.config import SETTINGS
from expiro.core.database import get_db
from expiro.core.errors import ExpiroError, UnavailableError
from expiro.main import APPLICATION
from expiro.routers.api.errors import to_http_exception
from expiro.routers.api.notifications import get_mail_transport
from expiro.utils.dates import today


def auth_headers(
    user_id: str = "user-alice",
    email: str = "alice@example.com",
    expires_delta: td | None = None,
) -> t.Dict[str, str]:
    """Authorization header carrying a signed token."""
    token = create_access_token(
        {"sub": user_id, "email": email}, expires_delta=expires_delta
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def api(
    session_maker, transport
) -> t.AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the app on the test database."""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    APPLICATION.dependency_overrides[get_db] = override_get_db
    APPLICATION.dependency_overrides[get_mail_transport] = lambda: transport
    async with AsyncClient(
        transport=ASGITransport(app=APPLICATION), base_url="http://test"
    ) as client:
        yield client
    APPLICATION.dependency_overrides.clear()


class TestProductsApi:
    """Tests for /api/products."""

    async def test_create_product(self, api):
        """A product within the threshold is due today."""
        expiry = today() + td(days=90)
        response = await api.post(
            "/api/products",
            json={"name": "Yogurt", "expiry_date": expiry.isoformat()},
            headers=auth_headers(),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["product"]["name"] == "Yogurt"
        assert body["product"]["status"] == "expiring_soon"
        assert body["product"]["reminder_date"] == today().isoformat()
        assert body["already_expired"] is False
        assert body["warning"] is None

    async def test_duplicate_is_conflict(self, api):
        """Logging the same product twice returns 409."""
        payload = {"name": "Milk", "expiry_date": "2025-01-01"}
        first = await api.post(
            "/api/products", json=payload, headers=auth_headers()
        )
        second = await api.post(
            "/api/products", json=payload, headers=auth_headers()
        )

        assert first.status_code == 201
        assert first.json()["already_expired"] is True
        assert second.status_code == 409
        detail = second.json()["detail"]
        assert detail["name"] == "Milk"
        assert detail["expiry_date"] == "2025-01-01"

    async def test_invalid_input(self, api):
        """Blank names and bad dates return 400 with the field."""
        blank = await api.post(
            "/api/products",
            json={"name": "  ", "expiry_date": "2026-06-01"},
            headers=auth_headers(),
        )
        bad_date = await api.post(
            "/api/products",
            json={"name": "Milk", "expiry_date": "tomorrow"},
            headers=auth_headers(),
        )

        assert blank.status_code == 400
        assert blank.json()["detail"]["field"] == "name"
        assert bad_date.status_code == 400
        assert bad_date.json()["detail"]["field"] == "expiry_date"

    async def test_requires_token(self, api):
        """Requests without a token are rejected."""
        response = await api.get("/api/products")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_expired_token(self, api):
        """An expired token asks the user to log in again."""
        response = await api.get(
            "/api/products",
            headers=auth_headers(expires_delta=td(minutes=-5)),
        )

        assert response.status_code == 401
        assert "Session expired" in response.json()["detail"]

    async def test_list_and_delete(self, api):
        """Products are listed per owner and deleted idempotently."""
        for name, days in [("Beans", 200), ("Bread", 2)]:
            await api.post(
                "/api/products",
                json={
                    "name": name,
                    "expiry_date": (today() + td(days=days)).isoformat(),
                },
                headers=auth_headers(),
            )
        await api.post(
            "/api/products",
            json={"name": "Soup", "expiry_date": today().isoformat()},
            headers=auth_headers("user-bob", "bob@example.com"),
        )

        listing = await api.get("/api/products", headers=auth_headers())
        assert listing.status_code == 200
        items = listing.json()["items"]
        assert [item["name"] for item in items] == ["Bread", "Beans"]

        safe = await api.get(
            "/api/products", params={"status": "safe"}, headers=auth_headers()
        )
        assert [item["name"] for item in safe.json()["items"]] == ["Beans"]

        product_id = items[0]["id"]
        for _ in range(2):
            deleted = await api.delete(
                f"/api/products/{product_id}", headers=auth_headers()
            )
            assert deleted.status_code == 204

        listing = await api.get("/api/products", headers=auth_headers())
        assert listing.json()["total"] == 1

    async def test_statistics(self, api):
        """Statistics count the caller's products per status."""
        await api.post(
            "/api/products",
            json={"name": "Milk", "expiry_date": "2025-01-01", "quantity": 2},
            headers=auth_headers(),
        )

        response = await api.get("/api/products/stats", headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == {
            "total_products": 1,
            "total_quantity": 2,
            "status_summary": {"safe": 0, "expiring_soon": 0, "expired": 1},
        }


class TestProfileApi:
    """Tests for /api/profile."""

    async def test_profile_created_on_first_use(self, api):
        """The profile mirrors the token claims."""
        response = await api.get("/api/profile", headers=auth_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "user-alice"
        assert body["email"] == "alice@example.com"
        assert body["email_notifications_enabled"] is True

    async def test_update_profile(self, api):
        """Users can rename themselves and opt out."""
        response = await api.put(
            "/api/profile",
            json={
                "display_name": "Alice",
                "email_notifications_enabled": False,
            },
            headers=auth_headers(),
        )

        assert response.status_code == 200
        assert response.json()["display_name"] == "Alice"
        assert response.json()["email_notifications_enabled"] is False

        reloaded = await api.get("/api/profile", headers=auth_headers())
        assert reloaded.json()["email_notifications_enabled"] is False


class TestNotificationsApi:
    """Tests for /api/notifications."""

    async def test_history_starts_empty(self, api):
        """A new user has no delivery history."""
        response = await api.get("/api/notifications", headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == {"items": [], "total": 0}

    async def test_test_email_requires_smtp(self, api, monkeypatch):
        """Without SMTP the test email is unavailable."""
        monkeypatch.setattr(SETTINGS, "smtp_enabled", False)

        response = await api.post(
            "/api/notifications/email/test", headers=auth_headers()
        )

        assert response.status_code == 503

    async def test_test_email(self, api, transport, monkeypatch):
        """The test email goes to the caller's address."""
        monkeypatch.setattr(SETTINGS, "smtp_enabled", True)

        response = await api.post(
            "/api/notifications/email/test", headers=auth_headers()
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert [message["to"] for message in transport.sent] == [
            "alice@example.com"
        ]

    async def test_test_email_delivery_failure(
        self, api, transport, monkeypatch
    ):
        """A rejected test email is reported as a server error."""
        monkeypatch.setattr(SETTINGS, "smtp_enabled", True)
        transport.fail_for.add("alice@example.com")

        response = await api.post(
            "/api/notifications/email/test", headers=auth_headers()
        )

        assert response.status_code == 500


class TestStorageFailures:
    """Tests for storage failures during a request."""

    async def test_failed_commit_is_unavailable(
        self, api, session_maker, monkeypatch
    ):
        """A commit that cannot reach storage returns 503."""

        async def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        async def failing_get_db():
            async with session_maker() as session:
                monkeypatch.setattr(session, "commit", broken_commit)
                try:
                    yield session
                except Exception:
                    await session.rollback()
                    raise

        normal_get_db = APPLICATION.dependency_overrides[get_db]
        APPLICATION.dependency_overrides[get_db] = failing_get_db
        response = await api.post(
            "/api/products",
            json={"name": "Milk", "expiry_date": "2026-06-01"},
            headers=auth_headers(),
        )
        APPLICATION.dependency_overrides[get_db] = normal_get_db

        assert response.status_code == 503
        listing = await api.get("/api/products", headers=auth_headers())
        assert listing.json()["total"] == 0


class TestErrorMapping:
    """Tests for to_http_exception."""

    def test_unavailable(self):
        """Storage failures are temporary."""
        assert to_http_exception(UnavailableError()).status_code == 503

    def test_unknown_error(self):
        """Anything unmapped is a server error."""
        error = to_http_exception(ExpiroError("boom"))
        assert error.status_code == 500
        assert error.detail == "boom"


async def test_health(api):
    """The health endpoint needs no token."""
    response = await api.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
