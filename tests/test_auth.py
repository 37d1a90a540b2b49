"""
Unit tests for back-office authentication
"""

from conftest import ADMIN_PASSWORD
from pouchshop.auth.auth_handler import AuthHandler

AUTH_URL = "/api/v1/auth"


class TestLogin:
    """Test cases for user login"""

    def test_login_success(self, client, admin_user):
        response = client.post(f"{AUTH_URL}/login", json={"email": "Admin@Example.com", "password": ADMIN_PASSWORD})
        assert response.status_code == 200

        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 30 * 60
        assert data["user"]["email"] == admin_user.email
        assert data["user"]["is_admin"] is True

        payload = AuthHandler().verify_token(data["access_token"])
        assert payload["sub"] == str(admin_user.id)
        assert payload["role"] == "admin"

    def test_token_grants_admin_access(self, client, admin_user):
        token = client.post(
            f"{AUTH_URL}/login", json={"email": admin_user.email, "password": ADMIN_PASSWORD}
        ).json()["access_token"]

        response = client.get("/api/v1/admin/orders/", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200

    def test_login_wrong_password(self, client, admin_user):
        response = client.post(f"{AUTH_URL}/login", json={"email": admin_user.email, "password": "WrongPass123"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_login_unknown_user(self, client, db_session):
        response = client.post(f"{AUTH_URL}/login", json={"email": "nobody@example.com", "password": "Whatever123"})
        assert response.status_code == 401

    def test_login_inactive_user(self, client, admin_user, db_session):
        admin_user.is_active = False
        db_session.commit()

        response = client.post(f"{AUTH_URL}/login", json={"email": admin_user.email, "password": ADMIN_PASSWORD})
        assert response.status_code == 401
        assert response.json()["detail"] == "Account is deactivated"


class TestCurrentUser:

    def test_me(self, client, admin_headers, admin_user):
        response = client.get(f"{AUTH_URL}/me", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["email"] == admin_user.email
        assert response.json()["full_name"] == "Shop Admin"

    def test_me_requires_token(self, client):
        assert client.get(f"{AUTH_URL}/me").status_code in (401, 403)

    def test_me_rejects_garbage_token(self, client):
        response = client.get(f"{AUTH_URL}/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401


class TestPasswordChange:

    def test_change_password(self, client, admin_headers, admin_user, db_session):
        response = client.post(f"{AUTH_URL}/change-password", headers=admin_headers, json={
            "current_password": ADMIN_PASSWORD,
            "new_password": "BrandNew456",
            "confirm_new_password": "BrandNew456",
        })
        assert response.status_code == 200

        db_session.refresh(admin_user)
        assert AuthHandler().verify_password("BrandNew456", admin_user.hashed_password)

    def test_wrong_current_password(self, client, admin_headers):
        response = client.post(f"{AUTH_URL}/change-password", headers=admin_headers, json={
            "current_password": "NotMine123",
            "new_password": "BrandNew456",
            "confirm_new_password": "BrandNew456",
        })
        assert response.status_code == 400
        assert response.json()["detail"] == "Current password is incorrect"

    def test_mismatched_confirmation(self, client, admin_headers):
        response = client.post(f"{AUTH_URL}/change-password", headers=admin_headers, json={
            "current_password": ADMIN_PASSWORD,
            "new_password": "BrandNew456",
            "confirm_new_password": "BrandNew789",
        })
        assert response.status_code == 422


class TestHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "PouchShop API"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
