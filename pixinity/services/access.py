"""Collection addressing and standing.

A collection is addressed either by its public UUID or by its numeric id.
A user's standing toward it (owner, accepted collaborator, visitor) is
read from the database on every call and never cached.
"""

from __future__ import annotations

import enum
import re
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pixinity.errors import AuthenticationRequired, AuthorizationDenied, NotFound
from pixinity.models import Collection, CollectionCollaborator, CollaboratorStatus, User

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)

# ids are 32-bit integer columns
MAX_ID = 2 ** 31 - 1


class Standing(str, enum.Enum):
    owner = "owner"
    collaborator = "collaborator"
    visitor = "visitor"


async def resolve(db: AsyncSession, identifier: str | int) -> Collection:
    """UUID text resolves by uuid; anything else is taken as the numeric id."""
    ident = str(identifier).strip()
    if UUID_RE.match(ident):
        stmt = select(Collection).where(Collection.uuid == ident.lower())
    else:
        try:
            numeric_id = int(ident)
        except ValueError:
            raise NotFound("Collection not found") from None
        if not 1 <= numeric_id <= MAX_ID:
            raise NotFound("Collection not found")
        stmt = select(Collection).where(Collection.id == numeric_id)
    collection = await db.scalar(stmt)
    if collection is None:
        raise NotFound("Collection not found")
    return collection


async def is_accepted_collaborator(db: AsyncSession, collection_id: int, user_id: int) -> bool:
    row = await db.scalar(
        select(CollectionCollaborator.id)
        .where(
            CollectionCollaborator.collection_id == collection_id,
            CollectionCollaborator.user_id == user_id,
            CollectionCollaborator.status == CollaboratorStatus.accepted,
        )
        .limit(1)
    )
    return row is not None


async def standing_of(db: AsyncSession, collection: Collection, user: Optional[User]) -> Standing:
    if user is None:
        return Standing.visitor
    if collection.user_id == user.id:
        return Standing.owner
    if await is_accepted_collaborator(db, collection.id, user.id):
        return Standing.collaborator
    return Standing.visitor


def can_view(collection: Collection, standing: Standing) -> bool:
    return not collection.is_private or standing in (Standing.owner, Standing.collaborator)


def can_add_photos(collection: Collection, standing: Standing) -> bool:
    if standing == Standing.owner:
        return True
    return standing == Standing.collaborator and bool(collection.is_collaborative)


async def require_view(db: AsyncSession, collection: Collection, user: Optional[User]) -> Standing:
    standing = await standing_of(db, collection, user)
    if not can_view(collection, standing):
        if user is None:
            raise AuthenticationRequired("Sign in to view this collection")
        raise AuthorizationDenied("This collection is private")
    return standing


def require_owner(collection: Collection, user: User, action: str = "modify") -> None:
    if collection.user_id != user.id:
        raise AuthorizationDenied(f"Not authorized to {action} this collection")


async def require_contributor(db: AsyncSession, collection: Collection, user: User) -> Standing:
    standing = await standing_of(db, collection, user)
    if not can_add_photos(collection, standing):
        if standing == Standing.collaborator:
            raise AuthorizationDenied("This collection is not collaborative")
        raise AuthorizationDenied("Not an accepted collaborator for this collection")
    return standing


def visible_clause(user: Optional[User]):
    """SQL filter for collections ``user`` may see."""
    if user is None:
        return Collection.is_private.is_(False)
    shared = select(CollectionCollaborator.collection_id).where(
        CollectionCollaborator.user_id == user.id,
        CollectionCollaborator.status == CollaboratorStatus.accepted,
    )
    return or_(Collection.is_private.is_(False), Collection.user_id == user.id, Collection.id.in_(shared))
