"""
HTTP tests against the FastAPI app with an injected service graph.
"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from teamhub.api.app import create_app
from teamhub.core.models import UserRole


@pytest.fixture
def client(services):
    return TestClient(create_app(services=services))


def _register(client, name, password="password1"):
    response = client.post("/v1/auth/register", json={
        "name": name,
        "email": f"{name.lower()}@example.com",
        "password": password,
    })
    assert response.status_code == 201, response.text
    body = response.json()
    return body["user"], {"Authorization": f"Bearer {body['tokens']['access_token']}"}


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


class TestAuthRoutes:
    def test_register_and_me(self, client):
        user, headers = _register(client, "Ana")

        response = client.get("/v1/auth/me", headers=headers)

        assert response.status_code == 200
        assert response.json()["id"] == user["id"]
        assert "password_hash" not in response.json()

    def test_unauthenticated(self, client):
        response = client.get("/v1/auth/me")
        assert response.status_code == 401
        assert response.json() == {"code": 401, "message": "Please authenticate"}

    def test_weak_password_is_rejected(self, client):
        response = client.post("/v1/auth/register", json={
            "name": "Ana", "email": "ana@example.com", "password": "short",
        })
        assert response.status_code == 400
        assert response.json()["code"] == 400

    def test_duplicate_email(self, client):
        _register(client, "Ana")
        response = client.post("/v1/auth/register", json={
            "name": "Ana", "email": "ANA@example.com", "password": "password1",
        })
        assert response.status_code == 409

    def test_refresh_and_logout(self, client):
        client.post("/v1/auth/register", json={
            "name": "Ana", "email": "ana@example.com", "password": "password1",
        })
        login = client.post("/v1/auth/login", json={"email": "ana@example.com", "password": "password1"})
        refresh_token = login.json()["tokens"]["refresh_token"]

        rotated = client.post("/v1/auth/refresh-tokens", json={"refresh_token": refresh_token})
        assert rotated.status_code == 200
        assert client.post("/v1/auth/refresh-tokens", json={"refresh_token": refresh_token}).status_code == 401

        new_token = rotated.json()["tokens"]["refresh_token"]
        assert client.post("/v1/auth/logout", json={"refresh_token": new_token}).status_code == 204
        assert client.post("/v1/auth/logout", json={"refresh_token": new_token}).status_code == 404

    def test_forgot_password_is_silent(self, client):
        response = client.post("/v1/auth/forgot-password", json={"email": "nobody@example.com"})
        assert response.status_code == 204


class TestTeamRoutes:
    def test_team_lifecycle(self, client):
        _, owner = _register(client, "Olga")
        invitee_user, invitee = _register(client, "Ivan")
        _, outsider = _register(client, "Otto")

        team = client.post("/v1/teams", json={"name": "Rockets"}, headers=owner).json()["team"]
        team_id = team["id"]

        invited = client.post(
            f"/v1/teams/{team_id}/invitation",
            json={"email": "ivan@example.com", "role": "teamUser"},
            headers=owner,
        )
        assert invited.status_code == 200
        invitation_id = invited.json()["team"]["invitations"][0]["id"]

        view = client.get(f"/v1/teams/{team_id}/invitation/{invitation_id}", headers=invitee)
        assert view.json()["team_name"] == "Rockets"

        accepted = client.post(
            f"/v1/teams/{team_id}/invitation/{invitation_id}",
            json={"accepted": True},
            headers=invitee,
        )
        assert accepted.status_code == 200
        assert accepted.json()["user"]["teams"][0]["role"] == "teamUser"

        assert client.get(f"/v1/teams/{team_id}", headers=invitee).status_code == 200
        assert client.get(f"/v1/teams/{team_id}", headers=outsider).status_code == 403
        assert client.patch(f"/v1/teams/{team_id}", json={"name": "X"}, headers=invitee).status_code == 403

        promoted = client.patch(
            f"/v1/teams/{team_id}/user/{invitee_user['id']}",
            json={"role": "teamAdmin"},
            headers=owner,
        )
        assert promoted.json()["user"]["teams"][0]["role"] == "teamAdmin"

        renamed = client.patch(f"/v1/teams/{team_id}", json={"name": "Comets"}, headers=invitee)
        assert renamed.json()["team"]["name"] == "Comets"

        deleted = client.delete(f"/v1/teams/{team_id}", headers=owner)
        assert deleted.json()["teams"] == []
        assert client.get("/v1/auth/me", headers=invitee).json()["teams"] == []

    def test_owner_role_is_not_assignable(self, client):
        _, owner = _register(client, "Olga")
        team_id = client.post("/v1/teams", json={"name": "Rockets"}, headers=owner).json()["team"]["id"]

        response = client.post(
            f"/v1/teams/{team_id}/invitation",
            json={"email": "ivan@example.com", "role": "teamOwner"},
            headers=owner,
        )
        assert response.status_code == 400


class TestUserRoutes:
    def test_plain_user_sees_only_self(self, client):
        ana, headers = _register(client, "Ana")
        bob, _ = _register(client, "Bob")

        assert client.get("/v1/users", headers=headers).status_code == 403
        assert client.get(f"/v1/users/{ana['id']}", headers=headers).status_code == 200
        assert client.get(f"/v1/users/{bob['id']}", headers=headers).status_code == 403

        updated = client.patch(f"/v1/users/{ana['id']}", json={"name": "Anna"}, headers=headers)
        assert updated.json()["user"]["name"] == "Anna"

    def test_admin_manages_users(self, client, services):
        admin = asyncio.run(services.user_service.create_user(
            "Root", "root@example.com", "password1", role=UserRole.ADMIN
        ))
        pair = asyncio.run(services.tokens.issue_token_pair(admin.id))
        headers = {"Authorization": f"Bearer {pair.access_token}"}

        created = client.post("/v1/users", json={
            "name": "Ana", "email": "ana@example.com", "password": "password1",
        }, headers=headers)
        assert created.status_code == 201

        listing = client.get("/v1/users", params={"sort_by": "name:asc"}, headers=headers).json()
        assert [u["name"] for u in listing["results"]] == ["Ana", "Root"]
        assert listing["totalResults"] == 2

        assert client.delete(f"/v1/users/{created.json()['id']}", headers=headers).status_code == 204
        assert client.get(f"/v1/users/{created.json()['id']}", headers=headers).status_code == 404

    def test_empty_update_rejected(self, client):
        ana, headers = _register(client, "Ana")
        assert client.patch(f"/v1/users/{ana['id']}", json={}, headers=headers).status_code == 400


class TestBillingRoutes:
    def test_products_are_public(self, client):
        products = client.get("/v1/billing/products").json()["products"]
        assert [p["product"]["metadata"]["type"] for p in products] == ["basic", "advanced"]

    def test_subscription_flow(self, client):
        _, headers = _register(client, "Ana")

        assert client.post(
            "/v1/billing/subscription", json={"subscription_type": "basic"}, headers=headers
        ).status_code == 404

        client.post("/v1/billing/payment-method", json={"payment_method_id": "pm_1"}, headers=headers)
        created = client.post(
            "/v1/billing/subscription", json={"subscription_type": "basic"}, headers=headers
        )
        subscription_id = created.json()["subscription"]["id"]

        completed = client.post("/v1/billing/subscription/complete", json={
            "subscription_id": subscription_id, "product_id": "prod_basic",
        }, headers=headers)
        assert completed.json()["user"]["subscription"]["subscription_type"] == "basic"

        assert client.delete("/v1/billing/subscription", headers=headers).status_code == 204

    def test_webhook(self, client, services):
        user, headers = _register(client, "Ana")
        stored = asyncio.run(services.users.get(user["id"]))
        payload = json.dumps({
            "type": "invoice.paid",
            "data": {"object": {
                "customer": stored.billing_customer_id,
                "subscription": "sub_1",
                "lines": {"data": [{"price": {"metadata": {"type": "advanced"}}}]},
            }},
        })

        response = client.post("/v1/billing/webhook", content=payload)

        assert response.json() == {"received": True}
        me = client.get("/v1/auth/me", headers=headers).json()
        assert me["subscription"] == {"id": "sub_1", "subscription_type": "advanced"}

    def test_malformed_webhook(self, client):
        assert client.post("/v1/billing/webhook", content="{").status_code == 400
