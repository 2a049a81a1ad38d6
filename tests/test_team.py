"""Tests for team members and invitations."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from travelvoice.models import TeamInvitation, User
from travelvoice.models.base import utcnow


async def invite(client, headers, email="new.agent@acmetravel.com", role="customer"):
    return await client.post("/api/v1/team/invite", json={"email": email, "role": role}, headers=headers)


async def token_for(session_factory, email):
    async with session_factory() as session:
        result = await session.execute(select(TeamInvitation).where(TeamInvitation.email == email))
        return result.scalar_one().token


class TestInvitations:
    """Tests for sending and managing invitations."""

    async def test_invite_sends_email(self, client, admin_headers, fake_email):
        response = await invite(client, admin_headers, email="New.Agent@AcmeTravel.com")

        assert response.status_code == 201
        data = response.json()
        assert data["emailSent"] is True
        assert data["invitation"]["email"] == "new.agent@acmetravel.com"
        assert data["invitation"]["status"] == "pending"
        base_url, token = data["inviteUrl"].split("?token=")
        assert base_url.endswith("/auth/accept-invite")
        assert len(token) == 64
        assert fake_email.invitations[0]["invite_url"] == data["inviteUrl"]

        team = (await client.get("/api/v1/team", headers=admin_headers)).json()
        assert [i["email"] for i in team["invitations"]] == ["new.agent@acmetravel.com"]
        assert team["currentUserRole"] == "admin"

    async def test_email_failure_is_not_fatal(self, client, admin_headers, fake_email):
        fake_email.fail = True
        response = await invite(client, admin_headers)
        assert response.status_code == 201
        assert response.json()["emailSent"] is False

    @pytest.mark.parametrize(
        "email,role,error",
        [
            ("someone@acmetravel.com", "owner", "Invalid role"),
            ("admin@acmetravel.com", "customer", "User is already a member of this organization"),
        ],
    )
    async def test_invite_validation(self, client, admin_headers, email, role, error):
        response = await invite(client, admin_headers, email=email, role=role)
        assert response.status_code == 400
        assert response.json() == {"error": error}

    async def test_blank_email(self, client, admin_headers):
        response = await invite(client, admin_headers, email="   ")
        assert response.status_code == 400
        assert response.json()["error"].startswith("email:")
        assert "Email is required" in response.json()["error"]

    @pytest.mark.parametrize("email", ["not-an-email", "a@b..com", "two@@acmetravel.com", "no-domain@"])
    async def test_malformed_email_is_rejected(self, client, admin_headers, session_factory, email):
        response = await invite(client, admin_headers, email=email)

        assert response.status_code == 400
        assert response.json()["error"].startswith("email:")
        async with session_factory() as session:
            assert (await session.execute(select(TeamInvitation))).scalars().all() == []

    async def test_duplicate_pending_invitation(self, client, admin_headers):
        await invite(client, admin_headers)
        response = await invite(client, admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "An invitation has already been sent to this email"}

    async def test_customer_cannot_invite(self, client, customer_headers):
        response = await invite(client, customer_headers)
        assert response.status_code == 403

    async def test_cancel_and_resend(self, client, admin_headers, fake_email):
        invitation_id = (await invite(client, admin_headers)).json()["invitation"]["id"]

        resent = await client.post(f"/api/v1/team/invitations/{invitation_id}", headers=admin_headers)
        assert resent.json() == {"success": True, "emailSent": True}
        assert len(fake_email.invitations) == 2

        cancelled = await client.delete(f"/api/v1/team/invitations/{invitation_id}", headers=admin_headers)
        assert cancelled.json() == {"success": True}

        again = await client.delete(f"/api/v1/team/invitations/{invitation_id}", headers=admin_headers)
        assert again.status_code == 400
        assert again.json() == {"error": "Can only cancel pending invitations"}


class TestAcceptInvitation:
    """Tests for accepting invitations."""

    async def test_accept_creates_user(self, client, admin_headers, session_factory):
        await invite(client, admin_headers, role="admin")
        token = await token_for(session_factory, "new.agent@acmetravel.com")

        check = await client.get("/api/v1/team/accept-invite", params={"token": token})
        assert check.status_code == 200
        assert check.json()["invitation"]["organizationName"] == "Acme Travel"
        assert check.json()["userExists"] is False

        response = await client.post(
            "/api/v1/team/accept-invite",
            json={"token": token, "password": "s3cure-pass", "first_name": "Nia", "last_name": "Obi"},
        )
        assert response.status_code == 200

        login = await client.post(
            "/api/v1/auth/login", json={"email": "new.agent@acmetravel.com", "password": "s3cure-pass"}
        )
        assert login.status_code == 200
        me = (await client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {login.json()['access_token']}"}
        )).json()
        assert me["user"]["role"] == "admin"
        assert me["organization"]["name"] == "Acme Travel"

        reused = await client.post(
            "/api/v1/team/accept-invite",
            json={"token": token, "password": "s3cure-pass", "first_name": "Nia", "last_name": "Obi"},
        )
        assert reused.status_code == 400
        assert reused.json() == {"error": "Invitation has already been accepted"}

    async def test_expired_invitation_is_marked(self, client, admin_headers, session_factory):
        await invite(client, admin_headers)
        async with session_factory() as session:
            invitation = (await session.execute(select(TeamInvitation))).scalar_one()
            invitation.expires_at = utcnow() - timedelta(hours=1)
            await session.commit()
            token = invitation.token

        response = await client.get("/api/v1/team/accept-invite", params={"token": token})
        assert response.status_code == 400
        assert response.json() == {"error": "Invitation has expired"}

        async with session_factory() as session:
            invitation = (await session.execute(select(TeamInvitation))).scalar_one()
            assert invitation.status == "expired"

    async def test_unknown_token(self, client):
        response = await client.get("/api/v1/team/accept-invite", params={"token": "nope"})
        assert response.status_code == 404
        assert response.json() == {"error": "Invalid invitation"}

    async def test_missing_token(self, client):
        response = await client.get("/api/v1/team/accept-invite")
        assert response.status_code == 400
        assert response.json() == {"error": "Token is required"}

    async def test_short_password(self, client, admin_headers, session_factory):
        await invite(client, admin_headers)
        token = await token_for(session_factory, "new.agent@acmetravel.com")

        response = await client.post(
            "/api/v1/team/accept-invite",
            json={"token": token, "password": "short", "first_name": "Nia", "last_name": "Obi"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Password must be at least 8 characters"}


class TestMembers:
    """Tests for changing and removing members."""

    async def test_change_role(self, client, admin_headers, customer_user):
        response = await client.patch(
            f"/api/v1/team/members/{customer_user.id}", json={"role": "admin"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["user"]["role"] == "admin"

    async def test_cannot_remove_self(self, client, admin_headers, admin_user):
        response = await client.delete(f"/api/v1/team/members/{admin_user.id}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "You cannot remove yourself from the organization"}

    async def test_remove_member(self, client, admin_headers, customer_user, session_factory):
        response = await client.delete(f"/api/v1/team/members/{customer_user.id}", headers=admin_headers)
        assert response.json() == {"success": True}
        async with session_factory() as session:
            assert await session.get(User, customer_user.id) is None

    async def test_member_of_other_organization(self, client, other_org_headers, customer_user):
        response = await client.delete(f"/api/v1/team/members/{customer_user.id}", headers=other_org_headers)
        assert response.status_code == 403
        assert response.json() == {"error": "User is not in your organization"}
