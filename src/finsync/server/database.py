"""Server database using SQLAlchemy with SQLite.

This module provides:
- User identities and token-based authentication
- Groups (partitions) and memberships
- Invitations, with atomic acceptance and age-based expiry
- Partition-scoped record documents
- Action log for membership changes
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, delete, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from finsync.core.types import GroupType, RecordKind
from finsync.server.models import (
    ActionLog,
    Base,
    Group,
    Invite,
    Membership,
    RecordDocument,
    Token,
    User,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Invites older than this are deleted by the expiry job
DEFAULT_INVITE_RETENTION_DAYS = 7


def hash_token(token: str) -> str:
    """Hash a token using SHA-256.

    Args:
        token: Raw token string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def personal_group_id(user_id: str) -> str:
    """Deterministic id of a user's personal group."""
    return f"personal_{user_id}"


class MembershipError(Exception):
    """Base exception for group and invite operations."""


class NotFound(MembershipError):
    """Group, invite or user does not exist."""


class PermissionDenied(MembershipError):
    """Caller is not allowed to perform this action."""


class PreconditionFailed(MembershipError):
    """Action is not valid in the current state (e.g. personal group)."""


class InvalidArgument(MembershipError):
    """Request arguments are inconsistent."""


class AlreadyExists(MembershipError):
    """Target already exists (e.g. user is already a member)."""


class Database:
    """SQLAlchemy database for the FinSync server.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        # Foreign keys are a per-connection setting in SQLite
        @event.listens_for(self._engine, "connect")
        def _enable_foreign_keys(dbapi_conn: Any, _record: Any) -> None:
            dbapi_conn.execute("PRAGMA foreign_keys=ON")

        # Enable WAL mode
        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Path of the database file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === User operations ===

    def create_user(self, user_id: str, email: str, display_name: str | None = None) -> User:
        """Create a user identity.

        Raises:
            IntegrityError: If the id or email already exists.
        """
        with self._session() as session:
            user = User(id=user_id, email=email, display_name=display_name)
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    def get_user(self, user_id: str) -> User | None:
        """Get a user by id."""
        with self._session() as session:
            user = session.get(User, user_id)
            if user:
                session.expunge(user)
            return user

    def get_user_by_email(self, email: str) -> User | None:
        """Get a user by email."""
        with self._session() as session:
            stmt = select(User).where(User.email == email)
            user = session.execute(stmt).scalar_one_or_none()
            if user:
                session.expunge(user)
            return user

    # === Token operations ===

    def create_token(
        self,
        user_id: str,
        expires_in: timedelta | None = None,
    ) -> tuple[str, Token]:
        """Create a new authentication token.

        Args:
            user_id: User to associate with the token.
            expires_in: Optional expiration duration.

        Returns:
            Tuple of (raw_token, Token object).
        """
        raw_token = "fs_" + secrets.token_urlsafe(32)
        now = datetime.now(UTC)
        expires_at = (now + expires_in) if expires_in else None

        with self._session() as session:
            token = Token(
                user_id=user_id,
                token_hash=hash_token(raw_token),
                created_at=now,
                expires_at=expires_at,
            )
            session.add(token)
            session.commit()
            session.refresh(token)
            session.expunge(token)
            return raw_token, token

    def validate_token(self, raw_token: str) -> Token | None:
        """Validate a token and return it if valid.

        Args:
            raw_token: Raw token string.

        Returns:
            Token if valid, None otherwise.
        """
        token_hash = hash_token(raw_token)
        with self._session() as session:
            stmt = select(Token).where(Token.token_hash == token_hash, Token.revoked == False)  # noqa: E712
            token = session.execute(stmt).scalar_one_or_none()

            if token is None:
                return None

            # Check expiration (handle both naive and aware datetimes)
            if token.expires_at:
                expires_at = token.expires_at
                if expires_at.tzinfo is None:
                    expires_at = expires_at.replace(tzinfo=UTC)
                if expires_at < datetime.now(UTC):
                    return None

            session.expunge(token)
            return token

    def revoke_token(self, token_id: int) -> None:
        """Revoke a token."""
        with self._session() as session:
            token = session.get(Token, token_id)
            if token:
                token.revoked = True
                session.commit()

    # === Group operations ===

    def _load_group(self, session: Session, group_id: str) -> Group:
        stmt = (
            select(Group)
            .options(selectinload(Group.memberships))
            .where(Group.id == group_id)
        )
        group = session.execute(stmt).scalar_one_or_none()
        if group is None:
            raise NotFound(f"Group not found: {group_id}")
        return group

    def create_group(
        self,
        name: str,
        admin_id: str,
        group_type: GroupType = GroupType.SHARED,
        group_id: str | None = None,
    ) -> Group:
        """Create a group with its admin as the only member.

        Args:
            name: Display name.
            admin_id: User creating the group.
            group_type: Personal or shared.
            group_id: Explicit id; a random one is generated if omitted.

        Raises:
            NotFound: If the admin user does not exist.
        """
        with self._session() as session:
            admin = session.get(User, admin_id)
            if admin is None:
                raise NotFound(f"User not found: {admin_id}")
            group = Group(
                id=group_id or secrets.token_hex(10),
                name=name,
                type=GroupType(group_type).value,
                admin_id=admin_id,
            )
            group.memberships.append(
                Membership(
                    user_id=admin_id,
                    display_name=admin.display_name or "Admin",
                    email=admin.email,
                )
            )
            session.add(group)
            session.commit()
            group = self._load_group(session, group.id)
            session.expunge(group)
            return group

    def ensure_personal_group(self, user_id: str) -> Group:
        """Get or create the personal group of a user."""
        group_id = personal_group_id(user_id)
        group = self.get_group(group_id)
        if group is not None:
            return group
        logger.info("Creating personal group for %s", user_id)
        return self.create_group("Personal Ledger", user_id, GroupType.PERSONAL, group_id)

    def get_group(self, group_id: str) -> Group | None:
        """Get a group (with memberships) by id."""
        with self._session() as session:
            try:
                group = self._load_group(session, group_id)
            except NotFound:
                return None
            session.expunge(group)
            return group

    def list_groups_for_user(self, user_id: str) -> list[Group]:
        """List the groups a user is a member of, oldest first."""
        with self._session() as session:
            stmt = (
                select(Group)
                .join(Membership, Membership.group_id == Group.id)
                .options(selectinload(Group.memberships))
                .where(Membership.user_id == user_id)
                .order_by(Group.created_at, Group.id)
            )
            groups = list(session.execute(stmt).scalars().unique().all())
            for group in groups:
                session.expunge(group)
            return groups

    def is_member(self, group_id: str, user_id: str) -> bool:
        """Check whether a user is a member of a group."""
        with self._session() as session:
            return session.get(Membership, (group_id, user_id)) is not None

    def check_member(self, group_id: str, user_id: str) -> None:
        """Ensure a group exists and the user belongs to it.

        Raises:
            NotFound: If the group does not exist.
            PermissionDenied: If the user is not a member.
        """
        with self._session() as session:
            if session.get(Group, group_id) is None:
                raise NotFound(f"Group not found: {group_id}")
            if session.get(Membership, (group_id, user_id)) is None:
                raise PermissionDenied(f"Not a member of group {group_id}")

    def delete_group(self, group_id: str, caller_id: str) -> None:
        """Delete a group and everything in it (admin only, not personal)."""
        with self._session() as session:
            group = self._load_group(session, group_id)
            if group.admin_id != caller_id:
                raise PermissionDenied("Only admin can delete the group.")
            if group.type == GroupType.PERSONAL.value:
                raise PreconditionFailed("Cannot delete personal profile.")
            session.delete(group)
            session.commit()
        logger.info("Group %s deleted by %s", group_id, caller_id)

    def leave_group(self, group_id: str, caller_id: str) -> None:
        """Remove the caller from a group (not the admin, not personal)."""
        with self._session() as session:
            group = self._load_group(session, group_id)
            if group.admin_id == caller_id:
                raise PreconditionFailed(
                    "Admin cannot leave the group. Delete the group instead."
                )
            if group.type == GroupType.PERSONAL.value:
                raise PreconditionFailed("Cannot leave personal profile.")
            session.execute(
                delete(Membership).where(
                    Membership.group_id == group_id, Membership.user_id == caller_id
                )
            )
            session.commit()
        self.log_action(group_id, "member_left", caller_id)

    def remove_member(self, group_id: str, member_id: str, caller_id: str) -> None:
        """Remove another member from a group (admin only)."""
        with self._session() as session:
            group = self._load_group(session, group_id)
            if group.admin_id != caller_id:
                raise PermissionDenied("Only admin can remove members.")
            if member_id == caller_id:
                raise InvalidArgument("Cannot remove yourself. Use leave instead.")
            session.execute(
                delete(Membership).where(
                    Membership.group_id == group_id, Membership.user_id == member_id
                )
            )
            session.commit()
        self.log_action(group_id, "member_removed", caller_id, member_id)

    # === Invite operations ===

    def send_invite(self, group_id: str, email: str, caller_id: str) -> Invite:
        """Invite an existing user to a group by email (admin only).

        Raises:
            NotFound: If the group or the invited user does not exist.
            PermissionDenied: If the caller is not the admin.
            PreconditionFailed: If the group is personal.
            AlreadyExists: If the user is already a member.
        """
        with self._session() as session:
            group = self._load_group(session, group_id)
            if group.admin_id != caller_id:
                raise PermissionDenied("Only admin can invite members.")
            if group.type == GroupType.PERSONAL.value:
                raise PreconditionFailed("Cannot invite members to personal profile.")

            invitee = session.execute(
                select(User).where(User.email == email)
            ).scalar_one_or_none()
            if invitee is None:
                raise NotFound("User with this email does not exist in FinSync.")
            if invitee.id in group.member_ids:
                raise AlreadyExists("User is already a member.")

            inviter = session.get(User, caller_id)
            inviter_name = (inviter.display_name or inviter.email) if inviter else caller_id
            invite = Invite(
                group_id=group_id,
                user_id=invitee.id,
                email=email,
                invited_by=caller_id,
                inviter_name=inviter_name,
                group_name=group.name,
            )
            session.add(invite)
            session.commit()
            session.refresh(invite)
            session.expunge(invite)

        self.log_action(group_id, "invite_sent", caller_id, invite.user_id, {"email": email})
        return invite

    def list_invites_for_user(self, user_id: str) -> list[Invite]:
        """List invites addressed to a user, newest first."""
        with self._session() as session:
            stmt = (
                select(Invite)
                .where(Invite.user_id == user_id)
                .order_by(Invite.created_at.desc())
            )
            invites = list(session.execute(stmt).scalars().all())
            for invite in invites:
                session.expunge(invite)
            return invites

    def _load_invite(self, session: Session, group_id: str, invite_id: int) -> Invite:
        invite = session.get(Invite, invite_id)
        if invite is None or invite.group_id != group_id:
            raise NotFound("Invite not found.")
        return invite

    def accept_invite(self, group_id: str, invite_id: int, caller_id: str) -> None:
        """Accept an invite.

        The membership insert and the invite deletion commit together or
        not at all.
        """
        with self._session() as session, session.begin():
            invite = self._load_invite(session, group_id, invite_id)
            group = self._load_group(session, group_id)
            if invite.user_id != caller_id:
                raise PermissionDenied("This invite is not for you.")

            if caller_id not in group.member_ids:
                user = session.get(User, caller_id)
                if user is None:
                    raise NotFound(f"User not found: {caller_id}")
                session.add(
                    Membership(
                        group_id=group_id,
                        user_id=caller_id,
                        display_name=user.display_name or user.email.split("@")[0],
                        email=user.email,
                    )
                )
            session.delete(invite)

        self.log_action(group_id, "invite_accepted", caller_id)

    def decline_invite(self, group_id: str, invite_id: int, caller_id: str) -> None:
        """Decline (delete) an invite addressed to the caller."""
        with self._session() as session:
            invite = self._load_invite(session, group_id, invite_id)
            if invite.user_id != caller_id:
                raise PermissionDenied("Not your invite.")
            session.delete(invite)
            session.commit()

    def expire_invites(self, older_than_days: int = DEFAULT_INVITE_RETENTION_DAYS) -> int:
        """Delete invites created more than ``older_than_days`` ago.

        Returns:
            Number of invites deleted.
        """
        cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
        with self._session() as session:
            result = session.execute(delete(Invite).where(Invite.created_at < cutoff))
            session.commit()
            return result.rowcount or 0

    # === Record operations ===

    def list_records(self, group_id: str, kind: RecordKind) -> list[dict[str, Any]]:
        """List every document of one collection of a group, tombstones included."""
        with self._session() as session:
            stmt = (
                select(RecordDocument)
                .where(RecordDocument.group_id == group_id, RecordDocument.kind == kind.value)
                .order_by(RecordDocument.record_id)
            )
            rows = session.execute(stmt).scalars().all()
            return [json.loads(row.data) for row in rows]

    def get_record(self, group_id: str, kind: RecordKind, record_id: str) -> dict[str, Any] | None:
        """Get one document by id."""
        with self._session() as session:
            row = self._find_record(session, group_id, kind, record_id)
            return json.loads(row.data) if row else None

    def _find_record(
        self, session: Session, group_id: str, kind: RecordKind, record_id: str
    ) -> RecordDocument | None:
        stmt = select(RecordDocument).where(
            RecordDocument.group_id == group_id,
            RecordDocument.kind == kind.value,
            RecordDocument.record_id == record_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    def upsert_record(
        self,
        group_id: str,
        kind: RecordKind,
        record_id: str,
        document: dict[str, Any],
        user_id: str,
    ) -> dict[str, Any]:
        """Create or replace a document, keyed by its string id.

        The stored document's ``id`` and ``groupId`` are set from the key.

        Returns:
            The stored document.
        """
        stored = {**document, "id": record_id, "groupId": group_id}
        with self._session() as session:
            row = self._find_record(session, group_id, kind, record_id)
            if row is None:
                row = RecordDocument(group_id=group_id, kind=kind.value, record_id=record_id)
                session.add(row)
            row.last_modified = stored.get("lastModified")
            row.deleted = bool(stored.get("deleted", False))
            row.data = json.dumps(stored)
            row.updated_by = user_id
            session.commit()
        return stored

    # === Action log ===

    def log_action(
        self,
        group_id: str,
        action: str,
        actor_id: str,
        target_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Append a membership action to the log.

        A failure to write the log is logged and never fails the action.
        """
        try:
            with self._session() as session:
                session.add(
                    ActionLog(
                        group_id=group_id,
                        action=action,
                        actor_id=actor_id,
                        target_id=target_id,
                        details=json.dumps(details or {}),
                    )
                )
                session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to log action %s on group %s", action, group_id)

    def list_actions(self, group_id: str) -> list[ActionLog]:
        """List the action log of a group, oldest first."""
        with self._session() as session:
            stmt = (
                select(ActionLog)
                .where(ActionLog.group_id == group_id)
                .order_by(ActionLog.timestamp, ActionLog.id)
            )
            actions = list(session.execute(stmt).scalars().all())
            for action in actions:
                session.expunge(action)
            return actions
