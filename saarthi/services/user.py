"""User service - users and caregiver relationships."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.models import (
    DEFAULT_CAREGIVER_PERMISSIONS,
    CaregiverRelationship,
    User,
    UserType,
)
from saarthi.utils.text import normalize_identity

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, phone_number: str) -> User | None:
    """Get user by (normalized) phone number."""
    result = await db.execute(
        select(User).where(User.phone_number == normalize_identity(phone_number))
    )
    return result.scalar_one_or_none()


async def user_exists(db: AsyncSession, phone_number: str) -> bool:
    return await get_user(db, phone_number) is not None


async def create_user(
    db: AsyncSession,
    phone_number: str,
    user_type: UserType,
    name: str,
    age: int | None = None,
    location: str | None = None,
    emergency_contact: str | None = None,
    emergency_contact_name: str | None = None,
    emergency_relationship: str | None = None,
    created_by: str | None = None,
) -> User:
    """Create a user, or return the existing one for that phone number."""
    existing = await get_user(db, phone_number)
    if existing:
        logger.info(f"👤 User {existing.phone_number} already exists, not recreating")
        return existing

    user = User(
        phone_number=normalize_identity(phone_number),
        user_type=user_type.value,
        name=name,
        age=age,
        location=location,
        emergency_contact=emergency_contact,
        emergency_contact_name=emergency_contact_name,
        emergency_relationship=emergency_relationship,
        created_by=created_by,
        profile={},
    )
    db.add(user)
    await db.flush()
    logger.info(f"👤 Created {user_type.value} user {user.phone_number} ({name})")
    return user


async def get_relationship(
    db: AsyncSession, child_phone: str, parent_phone: str
) -> CaregiverRelationship | None:
    result = await db.execute(
        select(CaregiverRelationship).where(
            CaregiverRelationship.child_phone == normalize_identity(child_phone),
            CaregiverRelationship.parent_phone == normalize_identity(parent_phone),
        )
    )
    return result.scalar_one_or_none()


async def create_relationship(
    db: AsyncSession,
    parent_phone: str,
    child_phone: str,
    relationship_type: str | None,
) -> CaregiverRelationship:
    existing = await get_relationship(db, child_phone, parent_phone)
    if existing:
        return existing

    relationship = CaregiverRelationship(
        parent_phone=normalize_identity(parent_phone),
        child_phone=normalize_identity(child_phone),
        relationship_type=relationship_type,
        permissions=list(DEFAULT_CAREGIVER_PERMISSIONS),
    )
    db.add(relationship)
    await db.flush()
    return relationship


async def get_child_relationships(
    db: AsyncSession, child_phone: str
) -> list[CaregiverRelationship]:
    """Parents a caregiver looks after, oldest link first."""
    result = await db.execute(
        select(CaregiverRelationship)
        .where(CaregiverRelationship.child_phone == normalize_identity(child_phone))
        .order_by(CaregiverRelationship.created_at)
    )
    return list(result.scalars().all())


async def list_relationships(db: AsyncSession) -> list[CaregiverRelationship]:
    result = await db.execute(select(CaregiverRelationship))
    return list(result.scalars().all())


async def has_permission(
    db: AsyncSession, child_phone: str, parent_phone: str, permission: str
) -> bool:
    relationship = await get_relationship(db, child_phone, parent_phone)
    if relationship is None:
        return False
    return permission in (relationship.permissions or [])


async def list_check_in_recipients(db: AsyncSession) -> list[User]:
    """Elderly users who have not opted out of check-ins."""
    result = await db.execute(
        select(User).where(
            User.user_type == UserType.ELDERLY.value,
            User.check_ins_opt_out.is_(False),
        )
    )
    return list(result.scalars().all())


async def touch_last_interaction(db: AsyncSession, phone_number: str) -> None:
    """Best-effort last-interaction stamp; never blocks routing."""
    try:
        await db.execute(
            update(User)
            .where(User.phone_number == normalize_identity(phone_number))
            .values(last_interaction_at=datetime.now(timezone.utc))
        )
    except SQLAlchemyError as e:
        logger.warning(f"⚠️ Could not update last interaction for {phone_number}: {e}")
        await db.rollback()
