"""
Team management endpoints: members, invitations and invite acceptance
"""
import logging
import secrets
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from travelvoice.core.config import settings
from travelvoice.core.database import get_db
from travelvoice.core.security import get_password_hash
from travelvoice.integrations.mailer import EmailService, get_email_service
from travelvoice.models import InvitationStatus, Organization, TeamInvitation, User, UserRole
from travelvoice.models.base import utcnow
from travelvoice.models.team_invitation import default_invitation_expiry
from travelvoice.schemas import AcceptInviteRequest, InviteRequest, RoleUpdate, UserResponse
from travelvoice.api.dependencies import get_current_admin, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()

VALID_ROLES = {role.value for role in UserRole}
MIN_PASSWORD_LENGTH = 8


def invite_url(token: str) -> str:
    return f"{settings.DASHBOARD_URL.rstrip('/')}/auth/accept-invite?token={token}"


def _invitation_dict(invitation: TeamInvitation) -> dict:
    return {
        "id": invitation.id,
        "email": invitation.email,
        "role": invitation.role,
        "status": invitation.status,
        "expiresAt": invitation.expires_at,
        "createdAt": invitation.created_at,
    }


async def _send_invitation_email(
    email_service: EmailService,
    invitation: TeamInvitation,
    inviter: User,
    organization_name: str,
) -> bool:
    try:
        await email_service.send_invitation(
            email=invitation.email,
            organization_name=organization_name,
            inviter_name=inviter.full_name or inviter.email,
            role=invitation.role,
            invite_url=invite_url(invitation.token),
        )
        return True
    except Exception as e:
        logger.error(f"Failed to send invitation email to {invitation.email}: {str(e)}")
        return False


async def _get_org_invitation(db: AsyncSession, organization_id: str, invitation_id: str) -> TeamInvitation:
    result = await db.execute(
        select(TeamInvitation).where(
            TeamInvitation.id == invitation_id,
            TeamInvitation.organization_id == organization_id,
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invitation not found"
        )
    return invitation


async def _get_org_member(db: AsyncSession, organization_id: str, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    if user.organization_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not in your organization"
        )
    return user


async def _load_pending_invitation(db: AsyncSession, token: str) -> TeamInvitation:
    """
    Look up an invitation by token. An overdue pending invitation is marked
    expired and rejected.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token is required"
        )
    result = await db.execute(select(TeamInvitation).where(TeamInvitation.token == token))
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invalid invitation"
        )

    if invitation.status == InvitationStatus.PENDING.value and invitation.is_expired:
        invitation.status = InvitationStatus.EXPIRED.value
        # Persist the status change before rejecting the request.
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invitation has expired"
        )
    if invitation.status != InvitationStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invitation has already been {invitation.status}"
        )
    return invitation


@router.get("")
async def get_team(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Members of the current organization and its pending invitations.
    """
    organization = await db.get(Organization, current_user.organization_id)
    members = await db.execute(
        select(User)
        .where(User.organization_id == current_user.organization_id)
        .order_by(User.created_at)
    )
    invitations = await db.execute(
        select(TeamInvitation)
        .where(
            TeamInvitation.organization_id == current_user.organization_id,
            TeamInvitation.status == InvitationStatus.PENDING.value,
        )
        .order_by(TeamInvitation.created_at.desc())
    )
    return {
        "organization": {"id": organization.id, "name": organization.name} if organization else None,
        "members": [UserResponse.model_validate(member) for member in members.scalars().all()],
        "invitations": [_invitation_dict(i) for i in invitations.scalars().all()],
        "currentUserRole": current_user.role,
        "currentUserId": current_user.id,
    }


@router.post("/invite", status_code=status.HTTP_201_CREATED)
async def invite_member(
    request: InviteRequest,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    email = request.email.lower()
    if request.role not in VALID_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role"
        )

    existing_member = await db.execute(
        select(User.id).where(User.email == email, User.organization_id == current_user.organization_id)
    )
    if existing_member.first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a member of this organization"
        )

    existing_invite = await db.execute(
        select(TeamInvitation.id).where(
            TeamInvitation.email == email,
            TeamInvitation.organization_id == current_user.organization_id,
            TeamInvitation.status == InvitationStatus.PENDING.value,
        )
    )
    if existing_invite.first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An invitation has already been sent to this email"
        )

    invitation = TeamInvitation(
        organization_id=current_user.organization_id,
        invited_by_id=current_user.id,
        email=email,
        role=request.role,
        token=secrets.token_hex(32),
        status=InvitationStatus.PENDING.value,
        expires_at=default_invitation_expiry(),
    )
    db.add(invitation)
    await db.flush()

    organization = await db.get(Organization, current_user.organization_id)
    email_sent = await _send_invitation_email(
        email_service, invitation, current_user, organization.name if organization else "the team"
    )

    logger.info(f"Invitation {invitation.id} sent to {email} by {current_user.email}")
    return {
        "invitation": _invitation_dict(invitation),
        "inviteUrl": invite_url(invitation.token),
        "emailSent": email_sent,
    }


@router.delete("/invitations/{invitation_id}")
async def cancel_invitation(
    invitation_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    invitation = await _get_org_invitation(db, current_user.organization_id, invitation_id)
    if invitation.status != InvitationStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Can only cancel pending invitations"
        )
    invitation.status = InvitationStatus.CANCELLED.value
    await db.flush()
    return {"success": True}


@router.post("/invitations/{invitation_id}")
async def resend_invitation(
    invitation_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """
    Send the invitation email again and restart its validity window.
    """
    invitation = await _get_org_invitation(db, current_user.organization_id, invitation_id)
    if invitation.status != InvitationStatus.PENDING.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Can only resend pending invitations"
        )
    invitation.expires_at = default_invitation_expiry()
    await db.flush()

    organization = await db.get(Organization, current_user.organization_id)
    email_sent = await _send_invitation_email(
        email_service, invitation, current_user, organization.name if organization else "the team"
    )
    return {"success": True, "emailSent": email_sent}


@router.patch("/members/{user_id}")
async def update_member_role(
    user_id: str,
    request: RoleUpdate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    if request.role not in VALID_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role"
        )
    member = await _get_org_member(db, current_user.organization_id, user_id)
    member.role = request.role
    await db.flush()
    logger.info(f"User {member.email} is now {member.role}")
    return {"user": UserResponse.model_validate(member)}


@router.delete("/members/{user_id}")
async def remove_member(
    user_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot remove yourself from the organization"
        )
    member = await _get_org_member(db, current_user.organization_id, user_id)
    await db.delete(member)
    await db.flush()
    logger.info(f"User {member.email} removed from organization {current_user.organization_id}")
    return {"success": True}


@router.get("/accept-invite")
async def validate_invitation(
    token: str = Query(""),
    db: AsyncSession = Depends(get_db)
):
    invitation = await _load_pending_invitation(db, token)
    organization = await db.get(Organization, invitation.organization_id)
    existing = await db.execute(select(User.id).where(User.email == invitation.email))
    return {
        "invitation": {
            "email": invitation.email,
            "role": invitation.role,
            "organizationName": organization.name if organization else None,
            "expiresAt": invitation.expires_at,
        },
        "userExists": existing.first() is not None,
    }


@router.post("/accept-invite")
async def accept_invitation(
    request: AcceptInviteRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Accept an invitation, creating the invited user in the organization.
    """
    invitation = await _load_pending_invitation(db, request.token)

    existing = await db.execute(select(User.id).where(User.email == invitation.email))
    if existing.first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This email is already associated with another organization. Please contact support."
        )
    if not request.password or not request.first_name or not request.last_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password, first name, and last name are required for new users"
        )
    if len(request.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )

    user = User(
        email=invitation.email,
        first_name=request.first_name,
        last_name=request.last_name,
        hashed_password=get_password_hash(request.password),
        role=invitation.role,
        is_active=True,
        organization_id=invitation.organization_id,
    )
    db.add(user)
    invitation.status = InvitationStatus.ACCEPTED.value
    invitation.accepted_at = utcnow()
    await db.flush()

    logger.info(f"Invitation {invitation.id} accepted by {user.email}")
    return {"success": True, "message": "Invitation accepted successfully"}
