"""
Organization business logic.

Handles organization lifecycle, avatar upload, membership management and
the invitation workflow (email + encrypted confirmation token).
"""

from __future__ import annotations

import logging
from uuid import UUID, uuid4

import redis.asyncio as aioredis
from fastapi import HTTPException, UploadFile, status
from kombu.exceptions import OperationalError
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from davinci.core.config import settings
from davinci.core.invite_token import (
    InvalidInvitationToken,
    InvitationToken,
    generate_invitation_token,
    parse_invitation_token,
)
from davinci.core.locks import CheckEntity, get_name_lock
from davinci.core.logging import operation_logger
from davinci.core.storage import ORG_AVATAR_PATH, AvatarStorage
from davinci.models.organization import Organization
from davinci.models.project import Project
from davinci.models.rel_user_organization import RelUserOrganization, UserOrgRole
from davinci.models.role import Role
from davinci.models.user import User
from davinci.schemas.organization import (
    AvatarResponse,
    BatchInviteMemberResult,
    InviteMembersRequest,
    OrganizationBaseInfo,
    OrganizationCreateRequest,
    OrganizationInfo,
    OrganizationMember,
    OrganizationUpdateRequest,
)
from davinci.schemas.user import UserBaseInfo

logger = logging.getLogger(__name__)


def _invalid_token() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": "INVALID_TOKEN", "message": "Invalid Token"},
    )


class OrganizationService:
    """Handles all organization operations."""

    def __init__(
        self,
        db: AsyncSession,
        redis: aioredis.Redis,
        storage: AvatarStorage | None = None,
    ) -> None:
        self.db = db
        self.redis = redis
        self.storage = storage or AvatarStorage()

    # -----------------------------------------------------------------------
    # Name check
    # -----------------------------------------------------------------------

    async def is_exist(self, name: str, org_id: UUID | None = None) -> bool:
        """True when `name` belongs to an organization other than `org_id`."""
        result = await self.db.execute(
            select(Organization.id).where(Organization.name == name)
        )
        existing_id = result.scalar_one_or_none()
        if existing_id is None:
            return False
        if org_id is not None:
            return existing_id != org_id
        return True

    @staticmethod
    def _alert_name_taken(name: str) -> None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "NAME_TAKEN",
                "message": f"The organization name '{name}' is already taken",
            },
        )

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(
        self, data: OrganizationCreateRequest, user: User
    ) -> OrganizationBaseInfo:
        """
        Create a new organization.

        - Rejects names already taken or currently being claimed
        - Creates the organization with the creator counted as first member
        - Assigns creator as Owner
        """
        name = data.name
        if await self.is_exist(name):
            self._alert_name_taken(name)

        lock = get_name_lock(self.redis, CheckEntity.organization, name)
        if not await lock.acquire():
            self._alert_name_taken(name)

        try:
            org = Organization(
                name=name,
                description=data.description,
                member_num=1,
                project_num=0,
                role_num=0,
                member_permission=1,
                allow_create_project=True,
                user_id=user.id,
                create_by=user.id,
            )
            self.db.add(org)
            try:
                await self.db.flush()
            except IntegrityError:
                self._alert_name_taken(name)

            rel = RelUserOrganization(
                org_id=org.id,
                user_id=user.id,
                role=UserOrgRole.owner,
                create_by=user.id,
            )
            self.db.add(rel)
            await self.db.flush()

            operation_logger.info("Organization(%s) create by user(%s)", org.id, user.id)

            return OrganizationBaseInfo(
                id=org.id,
                name=org.name,
                description=org.description,
                avatar=org.avatar,
                role=rel.role.value,
            )
        finally:
            await lock.release()

    # -----------------------------------------------------------------------
    # Update Organization
    # -----------------------------------------------------------------------

    async def update_organization(
        self, org_id: UUID, data: OrganizationUpdateRequest, user: User
    ) -> OrganizationInfo:
        """
        Update organization settings.

        Only the creator or an owner may update.
        """
        org = await self._get_organization(org_id)
        await self._check_owner(org, user.id, "update")

        name = data.name
        if await self.is_exist(name, org_id):
            self._alert_name_taken(name)

        lock = get_name_lock(self.redis, CheckEntity.organization, name)
        if not await lock.acquire():
            self._alert_name_taken(name)

        try:
            origin = repr(org)
            org.name = name
            org.description = data.description
            org.allow_create_project = data.allow_create_project
            org.member_permission = data.member_permission
            org.update_by = user.id
            try:
                await self.db.flush()
            except IntegrityError:
                self._alert_name_taken(name)
            await self.db.refresh(org)

            operation_logger.info(
                "Organization(%s) is update by user(%s), origin:%s", org.id, user.id, origin
            )
            return self._to_info(org, UserOrgRole.owner)
        finally:
            await lock.release()

    # -----------------------------------------------------------------------
    # Upload Avatar
    # -----------------------------------------------------------------------

    async def upload_avatar(
        self, org_id: UUID, file: UploadFile, user: User
    ) -> AvatarResponse:
        """
        Replace the organization avatar.

        - Creator or owner only
        - File must be an image
        - The previous avatar file is removed
        """
        org = await self._get_organization(org_id)
        await self._check_owner(org, user.id, "upload avatar to")

        if not await self.storage.is_image(file):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "FILE_FORMAT_ERROR", "message": "File format error"},
            )

        filename = f"{user.username}_{uuid4()}"
        try:
            avatar = await self.storage.upload(file, ORG_AVATAR_PATH, filename)
        except OSError as exc:
            logger.error("Organization(%s) avatar upload error, e:%s", org.name, exc)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={"code": "AVATAR_UPLOAD_FAILED", "message": "Organization avatar upload error"},
            ) from exc

        previous = org.avatar
        org.avatar = avatar
        org.update_by = user.id
        try:
            await self.db.flush()
        except SQLAlchemyError:
            self.storage.remove(avatar)
            raise

        if previous:
            self.storage.remove(previous)

        return AvatarResponse(avatar=avatar)

    # -----------------------------------------------------------------------
    # Delete Organization
    # -----------------------------------------------------------------------

    async def delete_organization(self, org_id: UUID, user: User) -> None:
        """
        Delete an organization with its memberships and roles.

        Refused while any project still belongs to it.
        """
        org = await self._get_organization(org_id)
        await self._check_owner(org, user.id, "delete")

        project_count = await self.db.scalar(
            select(func.count()).select_from(Project).where(Project.org_id == org_id)
        )
        if project_count:
            logger.error(
                "There is at least one project under the organization(%s), it is can not be deleted",
                org.id,
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "ORG_HAS_PROJECTS",
                    "message": "There is at least one project under this organization, it is can not be deleted",
                },
            )

        await self.db.execute(delete(RelUserOrganization).where(RelUserOrganization.org_id == org_id))
        await self.db.execute(delete(Role).where(Role.org_id == org_id))
        await self.db.execute(delete(Organization).where(Organization.id == org_id))
        await self.db.flush()

        operation_logger.info("Organization(%s) is delete by user(%s)", org_id, user.id)

    # -----------------------------------------------------------------------
    # Get Organization(s)
    # -----------------------------------------------------------------------

    async def get_organization(self, org_id: UUID, user: User) -> OrganizationInfo:
        """Organization detail with the caller's role. Members only."""
        org = await self._get_organization(org_id)

        rel = await self._get_rel(user.id, org_id)
        if rel is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "NOT_A_MEMBER", "message": "Insufficient permissions"},
            )

        return self._to_info(org, rel.role)

    async def get_organizations(self, user: User) -> list[OrganizationInfo]:
        """Every organization the user belongs to, with the user's role."""
        result = await self.db.execute(
            select(Organization, RelUserOrganization.role)
            .join(RelUserOrganization, RelUserOrganization.org_id == Organization.id)
            .where(RelUserOrganization.user_id == user.id)
            .order_by(Organization.created_at, Organization.name)
        )

        infos = []
        for org, role in result.all():
            info = self._to_info(org, role)
            if role == UserOrgRole.owner:
                info.allow_create_project = True
            infos.append(info)
        return infos

    # -----------------------------------------------------------------------
    # List Members
    # -----------------------------------------------------------------------

    async def get_org_members(self, org_id: UUID) -> list[OrganizationMember]:
        """List all members of an organization with user details."""
        result = await self.db.execute(
            select(RelUserOrganization, User)
            .join(User, RelUserOrganization.user_id == User.id)
            .where(RelUserOrganization.org_id == org_id)
            .order_by(RelUserOrganization.created_at, User.username)
        )
        return [
            OrganizationMember(
                id=rel.id,
                user=UserBaseInfo.model_validate(member),
                role=rel.role.value,
            )
            for rel, member in result.all()
        ]

    # -----------------------------------------------------------------------
    # Invite Member
    # -----------------------------------------------------------------------

    async def invite_member(self, org_id: UUID, member_id: UUID, user: User) -> UserBaseInfo:
        """
        Invite one existing user by email.

        - Caller must be an owner
        - Invitee must not already be a member and must have an email
        """
        org = await self._get_organization(org_id)

        member = await self.db.get(User, member_id)
        if member is None:
            logger.error("User(%s) is not found", member_id)
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "USER_NOT_FOUND", "message": "User is not found"},
            )

        await self._check_member_owner(
            user.id,
            org_id,
            "You can not invite anyone to join this organization, cause you are not the owner of this organization",
        )

        if await self._get_rel(member_id, org_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "ALREADY_MEMBER",
                    "message": "The invitee is already a member of this organization",
                },
            )

        if not member.email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "EMPTY_EMAIL", "message": "The email address of the invitee is empty"},
            )

        self.send_invite_email(org, member, user)
        return UserBaseInfo.model_validate(member)

    async def batch_invite_members(
        self, org_id: UUID, data: InviteMembersRequest, user: User
    ) -> BatchInviteMemberResult:
        """
        Invite several users at once.

        Unknown ids land in `not_users`, current members in `exists`. With
        `need_confirm` the invitees get an email; otherwise they are added
        as members straight away.
        """
        org = await self._get_organization(org_id)
        await self._check_member_owner(
            user.id,
            org_id,
            "You cannot invite anyone to join this organization, cause you are not the owner of this organization",
        )

        result = BatchInviteMemberResult(status=status.HTTP_200_OK)
        members = set(data.members)

        users_result = await self.db.execute(select(User).where(User.id.in_(list(members))))
        users = list(users_result.scalars().all())
        user_ids = {u.id for u in users}

        result.not_users = members - user_ids
        members -= result.not_users
        if not members:
            result.status = status.HTTP_400_BAD_REQUEST
            return result

        exists_result = await self.db.execute(
            select(User)
            .join(RelUserOrganization, RelUserOrganization.user_id == User.id)
            .where(
                RelUserOrganization.org_id == org_id,
                RelUserOrganization.user_id.in_(list(members)),
            )
            .order_by(User.username)
        )
        existing_users = list(exists_result.scalars().all())
        result.exists = [UserBaseInfo.model_validate(u) for u in existing_users]
        members -= {u.id for u in existing_users}

        if not members:
            result.status = status.HTTP_400_BAD_REQUEST
            return result

        invite_users = sorted((u for u in users if u.id in members), key=lambda u: u.username)

        if data.need_confirm:
            for member in invite_users:
                self.send_invite_email(org, member, user)
        else:
            self.db.add_all(
                [
                    RelUserOrganization(
                        org_id=org_id,
                        user_id=member.id,
                        role=UserOrgRole.member,
                        create_by=user.id,
                    )
                    for member in invite_users
                ]
            )
            try:
                await self.db.flush()
            except IntegrityError as exc:
                logger.error("Batch join into organization(%s) hit an existing membership", org_id)
                raise self._already_joined() from exc
            await self._change_member_num(org_id, len(invite_users))

        logger.info(
            "User(%s) invite members join organization(%s), is need confirm:%s members:%s",
            user.id,
            org_id,
            data.need_confirm,
            sorted(str(m) for m in members),
        )
        result.successes = [UserBaseInfo.model_validate(u) for u in invite_users]
        return result

    # -----------------------------------------------------------------------
    # Confirm Invitation
    # -----------------------------------------------------------------------

    async def confirm_invite(self, token: str, user: User) -> OrganizationInfo:
        """
        Join an organization with an invitation token while logged in.

        The token must have been issued to the caller and the caller's
        password must not have changed since.
        """
        invitation = self._parse_token(token)

        if invitation.member_id != user.id:
            logger.error("ConfirmInvite error: invalid token member, username is wrong")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_TOKEN_MEMBER", "message": "Username is wrong"},
            )

        if invitation.password != user.password_hash:
            logger.error("ConfirmInvite error: invalid token password")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_TOKEN_PASSWORD", "message": "Password is wrong"},
            )

        org = await self._check_invitation_source(invitation)
        await self._check_not_joined(user.id, org.id)

        rel = await self._join(org.id, user.id)
        await self.db.refresh(org)
        return self._to_info(org, rel.role)

    async def confirm_invite_no_login(self, token: str) -> OrganizationInfo:
        """
        Join an organization with an invitation token, no session required.

        The token itself authorizes the invitee, so it is rejected once the
        invitee's password has changed.
        """
        invitation = self._parse_token(token)
        org = await self._check_invitation_source(invitation)

        member = await self.db.get(User, invitation.member_id)
        if member is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "USER_NOT_FOUND", "message": "User is not found"},
            )

        if invitation.password != member.password_hash:
            logger.error("ConfirmInvite error: invalid token password")
            raise _invalid_token()

        await self._check_not_joined(member.id, org.id)

        rel = await self._join(org.id, member.id)
        await self.db.refresh(org)
        return self._to_info(org, rel.role)

    # -----------------------------------------------------------------------
    # Remove Member
    # -----------------------------------------------------------------------

    async def delete_org_member(self, relation_id: UUID, user: User) -> None:
        """
        Remove a membership.

        - Owner only
        - The creator cannot be removed
        - Owners cannot remove themselves
        """
        rel = await self.db.get(RelUserOrganization, relation_id)
        if rel is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "MEMBER_NOT_FOUND",
                    "message": "This member is no longer the member of the organization",
                },
            )

        org_id = rel.org_id
        await self._check_member_owner(
            user.id,
            org_id,
            "You can not delete any member of this organization, cause you are not the owner of this organization",
        )

        org = await self._get_organization(org_id)
        if org.user_id == rel.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "CANNOT_DELETE_CREATOR",
                    "message": "You have not permission delete the creator of the organization",
                },
            )

        if rel.user_id == user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "CANNOT_DELETE_SELF",
                    "message": "You can not delete yourself in this organization",
                },
            )

        origin = repr(rel)
        await self.db.execute(
            delete(RelUserOrganization).where(RelUserOrganization.id == relation_id)
        )
        await self._change_member_num(org_id, -1)

        operation_logger.info(
            "RelUserOrganization(%s) is delete by user(%s), origin:%s", relation_id, user.id, origin
        )

    # -----------------------------------------------------------------------
    # Update Member Role
    # -----------------------------------------------------------------------

    async def update_member_role(
        self, relation_id: UUID, user: User, role: str
    ) -> OrganizationMember:
        """
        Change a member's role.

        - Owner only
        - Nobody can change their own role or the creator's role
        """
        rel = await self.db.get(RelUserOrganization, relation_id)
        if rel is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "MEMBER_NOT_FOUND",
                    "message": "This member are no longer member of the organization",
                },
            )

        org = await self._get_organization(rel.org_id)
        await self._check_member_owner(
            user.id,
            rel.org_id,
            "You can not update any member of this organization, cause you are not the owner of this organization",
        )

        new_role = UserOrgRole.role_of(role)
        if new_role is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_ROLE", "message": "Invalid role"},
            )

        if rel.user_id == user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "CANNOT_CHANGE_OWN_ROLE", "message": "You cannot change your own role"},
            )

        if rel.user_id == org.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "CANNOT_CHANGE_CREATOR",
                    "message": "You have not permission to change the role of the creator",
                },
            )

        if rel.role == new_role:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "ROLE_UNCHANGED", "message": "This member does not need to change role"},
            )

        origin = repr(rel)
        rel.role = new_role
        rel.update_by = user.id
        await self.db.flush()

        operation_logger.info(
            "RelUserOrganization(%s) is update by user(%s), origin:%s", rel, user.id, origin
        )

        member = await self.db.get(User, rel.user_id)
        return OrganizationMember(
            id=rel.id,
            user=UserBaseInfo.model_validate(member),
            role=rel.role.value,
        )

    # -----------------------------------------------------------------------
    # Invitation Email
    # -----------------------------------------------------------------------

    def send_invite_email(self, org: Organization, member: User, inviter: User) -> None:
        """
        Queue the invitation email for `member`.

        A broker outage is logged; the invitation request itself still succeeds.
        """
        token = generate_invitation_token(
            inviter_id=inviter.id,
            member_id=member.id,
            org_id=org.id,
            password=member.password_hash,
        )

        from davinci.workers.email_tasks import send_invitation_email
        try:
            send_invitation_email.delay(
                to_email=member.email,
                username=member.username,
                inviter_name=inviter.username,
                org_name=org.name,
                invitation_token=token,
                frontend_url=settings.FRONTEND_URL,
            )
        except OperationalError as exc:
            logger.error("Failed to queue invitation email for user(%s): %s", member.id, exc)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _get_organization(self, org_id: UUID) -> Organization:
        org = await self.db.get(Organization, org_id, populate_existing=True)
        if org is None:
            logger.error("Organization(%s) is not found", org_id)
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "ORG_NOT_FOUND", "message": "Organization is not found"},
            )
        return org

    async def _get_rel(self, user_id: UUID, org_id: UUID) -> RelUserOrganization | None:
        result = await self.db.execute(
            select(RelUserOrganization).where(
                RelUserOrganization.user_id == user_id,
                RelUserOrganization.org_id == org_id,
            )
        )
        return result.scalar_one_or_none()

    async def _check_owner(self, org: Organization, user_id: UUID, operation: str) -> None:
        """Creator or owner may manage the organization itself."""
        if org.user_id == user_id:
            return
        rel = await self._get_rel(user_id, org.id)
        if rel is None or rel.role != UserOrgRole.owner:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "NOT_OWNER",
                    "message": f"You have not permission to {operation} this organization",
                },
            )

    async def _check_member_owner(self, user_id: UUID, org_id: UUID, message: str) -> None:
        """Only owners may manage memberships."""
        rel = await self._get_rel(user_id, org_id)
        if rel is None or rel.role != UserOrgRole.owner:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "NOT_OWNER", "message": message},
            )

    async def _check_not_joined(self, member_id: UUID, org_id: UUID) -> None:
        if await self._get_rel(member_id, org_id) is not None:
            raise self._already_joined()

    def _parse_token(self, token: str) -> InvitationToken:
        try:
            return parse_invitation_token(token)
        except InvalidInvitationToken as exc:
            logger.error("ConfirmInvite error: %s", exc)
            raise _invalid_token() from exc

    async def _check_invitation_source(self, invitation: InvitationToken) -> Organization:
        """Inviter must still exist and still own the organization."""
        inviter = await self.db.get(User, invitation.inviter_id)
        if inviter is None:
            logger.error("ConfirmInvite error: invalid token inviter")
            raise _invalid_token()

        org = await self._get_organization(invitation.org_id)

        inviter_rel = await self._get_rel(inviter.id, org.id)
        if inviter_rel is None or inviter_rel.role != UserOrgRole.owner:
            logger.error("ConfirmInvite error: invalid token inviter permission")
            raise _invalid_token()
        return org

    async def _join(self, org_id: UUID, member_id: UUID) -> RelUserOrganization:
        rel = RelUserOrganization(
            org_id=org_id,
            user_id=member_id,
            role=UserOrgRole.member,
            create_by=member_id,
        )
        self.db.add(rel)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise self._already_joined() from exc
        await self._change_member_num(org_id, 1)
        operation_logger.info("User(%s) joined organization(%s)", member_id, org_id)
        return rel

    @staticmethod
    def _already_joined() -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "ALREADY_JOINED",
                "message": "You have joined the organization and don't need to repeat",
            },
        )

    async def _change_member_num(self, org_id: UUID, delta: int) -> None:
        """Atomically shift member_num by `delta`, never dropping below zero."""
        new_value = case(
            (Organization.member_num + delta < 0, 0),
            else_=Organization.member_num + delta,
        )
        await self.db.execute(
            update(Organization)
            .where(Organization.id == org_id)
            .values(member_num=new_value)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _to_info(org: Organization, role: UserOrgRole) -> OrganizationInfo:
        return OrganizationInfo(
            id=org.id,
            name=org.name,
            description=org.description,
            avatar=org.avatar,
            user_id=org.user_id,
            project_num=org.project_num,
            member_num=org.member_num,
            role_num=org.role_num,
            allow_create_project=org.allow_create_project,
            member_permission=org.member_permission,
            created_at=org.created_at,
            updated_at=org.updated_at,
            role=role.value,
        )
