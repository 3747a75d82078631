"""Collection collaboration: OTP invitations and their acceptance.

Lifecycle of a CollectionCollaborator row::

    absent --invite--> pending --accept--> accepted
                       pending --resend--> pending (new code, new expiry)

The owner may hard-delete a row in any state; there is no declined or
revoked state.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.background import spawn
from pixinity.errors import AuthorizationDenied, Conflict, Expired, InvalidCode, NotFound
from pixinity.models import (
    Collection,
    CollectionCollaborator,
    CollaboratorRole,
    CollaboratorStatus,
    User,
)
from pixinity.services.access import Standing, is_accepted_collaborator, require_owner, resolve, standing_of
from pixinity.services.mailer import send_collaboration_invite
from pixinity.services.notifications import NotificationType, notify
from pixinity.settings.config import settings
from pixinity.utils import aware, now_tz

logger = logging.getLogger(__name__)

OTP_DIGITS = 6


def new_otp() -> str:
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


def otp_expiry() -> datetime:
    return now_tz() + timedelta(hours=settings.INVITE_OTP_TTL_HOURS)


def _normalize(emails: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(e.strip().lower() for e in emails if e and e.strip()))


async def list_rows(db: AsyncSession, collection_id: int) -> list[CollectionCollaborator]:
    stmt = (
        select(CollectionCollaborator)
        .where(CollectionCollaborator.collection_id == collection_id)
        .order_by(CollectionCollaborator.invited_at, CollectionCollaborator.id)
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(stmt)).scalars().unique())


async def create_invites(
    db: AsyncSession,
    collection: Collection,
    inviter: User,
    emails: Sequence[str],
    *,
    skip_existing: bool = False,
) -> list[CollectionCollaborator]:
    """Insert one pending row per email; the caller commits, then sends.

    With ``skip_existing`` (the edit path) an email already pending or
    accepted on this collection produces nothing: no new row, no new code.
    """
    wanted = [e for e in _normalize(emails) if e != (inviter.email or "").lower()]
    if skip_existing and wanted:
        taken = set(
            (
                await db.execute(
                    select(func.lower(CollectionCollaborator.email)).where(
                        CollectionCollaborator.collection_id == collection.id,
                        CollectionCollaborator.status.in_(
                            [CollaboratorStatus.pending, CollaboratorStatus.accepted]
                        ),
                    )
                )
            ).scalars()
        )
        # accepted members may have redeemed a code sent to another address
        taken.update(
            (
                await db.execute(
                    select(func.lower(User.email))
                    .join(CollectionCollaborator, CollectionCollaborator.user_id == User.id)
                    .where(
                        CollectionCollaborator.collection_id == collection.id,
                        CollectionCollaborator.status == CollaboratorStatus.accepted,
                    )
                )
            ).scalars()
        )
        wanted = [e for e in wanted if e not in taken]
    if not wanted:
        return []

    accounts = {
        email.lower(): uid
        for uid, email in (
            await db.execute(select(User.id, User.email).where(func.lower(User.email).in_(wanted)))
        ).all()
    }
    rows = []
    for email in wanted:
        row = CollectionCollaborator(
            collection_id=collection.id,
            user_id=accounts.get(email),
            email=email,
            role=CollaboratorRole.editor,
            status=CollaboratorStatus.pending,
            otp_code=new_otp(),
            otp_expires_at=otp_expiry(),
            invited_by_user_id=inviter.id,
            invited_at=now_tz(),
        )
        db.add(row)
        rows.append(row)
    await db.flush()
    logger.info("Invited %d collaborator(s) to collection %s", len(rows), collection.id)
    return rows


def send_invites(collection: Collection, inviter: User, rows: Sequence[CollectionCollaborator]) -> None:
    """Queue one invitation email per row. Mail failures are logged, never raised."""
    for row in rows:
        spawn(
            send_collaboration_invite(
                row.email,
                inviter_name=inviter.display_name,
                collection_name=collection.name,
                collection_uuid=collection.uuid,
                otp_code=row.otp_code,
                needs_registration=row.user_id is None,
            ),
            name=f"collab-invite-{row.id}",
        )


async def accept(db: AsyncSession, identifier: str | int, user: User, otp_code: str) -> CollectionCollaborator:
    """Redeem an invitation code. The first failing check wins:

    1. the collection is collaborative, else AuthorizationDenied
    2. a private collection only admits its owner, else AuthorizationDenied
    3. a pending row exists for (collection, code), else InvalidCode
    4. that row has not expired, else Expired
    5. a row addressed to an account admits only that account, else AuthorizationDenied
    """
    collection = await resolve(db, identifier)
    if not collection.is_collaborative:
        raise AuthorizationDenied("This collection is not collaborative")
    if collection.is_private and collection.user_id != user.id:
        raise AuthorizationDenied("This collection is private")

    code = (otp_code or "").strip()
    row = await db.scalar(
        select(CollectionCollaborator)
        .where(
            CollectionCollaborator.collection_id == collection.id,
            CollectionCollaborator.otp_code == code,
            CollectionCollaborator.status == CollaboratorStatus.pending,
        )
        .order_by(CollectionCollaborator.id.desc())
        .limit(1)
    )
    if row is None:
        raise InvalidCode()
    expires_at = aware(row.otp_expires_at)
    if expires_at is None or expires_at <= now_tz():
        raise Expired()
    if row.user_id is not None and row.user_id != user.id:
        raise AuthorizationDenied("This invitation is for another user")
    if await is_accepted_collaborator(db, collection.id, user.id):
        raise Conflict("You are already a collaborator on this collection")

    # only one concurrent redemption can move the row out of pending
    try:
        result = await db.execute(
            update(CollectionCollaborator)
            .where(
                CollectionCollaborator.id == row.id,
                CollectionCollaborator.status == CollaboratorStatus.pending,
            )
            .values(status=CollaboratorStatus.accepted, user_id=user.id, responded_at=now_tz())
            .execution_options(synchronize_session=False)
        )
    except IntegrityError:
        await db.rollback()
        raise Conflict("You are already a collaborator on this collection") from None
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidCode()
    await db.commit()
    logger.info("User %s accepted invitation %s on collection %s", user.id, row.id, collection.id)

    notify(
        collection.user_id,
        NotificationType.collaboration_accepted,
        f"{user.display_name} accepted your invitation to collaborate on \"{collection.name}\"",
        related_id=collection.id,
        action_url=f"/collections/{collection.uuid}",
        actor_id=user.id,
    )
    return await _get_row(db, collection.id, row.id)


async def _get_row(db: AsyncSession, collection_id: int, collaborator_id: int) -> CollectionCollaborator:
    row = await db.scalar(
        select(CollectionCollaborator)
        .where(
            CollectionCollaborator.id == collaborator_id,
            CollectionCollaborator.collection_id == collection_id,
        )
        .execution_options(populate_existing=True)
    )
    if row is None:
        raise NotFound("Collaborator not found")
    return row


async def resend(db: AsyncSession, identifier: str | int, owner: User, collaborator_id: int) -> CollectionCollaborator:
    collection = await resolve(db, identifier)
    require_owner(collection, owner, "manage collaborators on")
    row = await _get_row(db, collection.id, collaborator_id)
    if row.status != CollaboratorStatus.pending:
        raise NotFound("This invitation has already been accepted or declined")

    row.otp_code = new_otp()
    row.otp_expires_at = otp_expiry()
    row.invited_at = now_tz()
    await db.commit()
    send_invites(collection, owner, [row])
    logger.info("Resent invitation %s on collection %s", row.id, collection.id)
    return await _get_row(db, collection.id, row.id)


async def remove(db: AsyncSession, identifier: str | int, owner: User, collaborator_id: int) -> None:
    collection = await resolve(db, identifier)
    require_owner(collection, owner, "manage collaborators on")
    result = await db.execute(
        delete(CollectionCollaborator).where(
            CollectionCollaborator.id == collaborator_id,
            CollectionCollaborator.collection_id == collection.id,
        )
    )
    if result.rowcount == 0:
        raise NotFound("Collaborator not found")
    await db.commit()
    logger.info("Removed collaborator %s from collection %s", collaborator_id, collection.id)


async def list_for_member(db: AsyncSession, identifier: str | int, user: User) -> list[CollectionCollaborator]:
    """Owner and accepted collaborators may list every row, pending included."""
    collection = await resolve(db, identifier)
    standing = await standing_of(db, collection, user)
    if standing == Standing.visitor:
        raise AuthorizationDenied("Only members can view collaborators")
    return await list_rows(db, collection.id)
