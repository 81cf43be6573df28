"""
Bootstrap administrator seeding.
"""
import os
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from careservices.auth.models import User, Role
from careservices.auth.passwords import hash_password

logger = logging.getLogger("careservices.auth.seed")


async def seed_admin_user(db: AsyncSession) -> None:
    """
    Make sure the bootstrap administrator exists and is active.

    The account is created from ADMIN_EMAIL / ADMIN_PASSWORD when missing.
    An existing account keeps its password but gets its admin role and
    active flag restored.
    """
    email = (os.getenv("ADMIN_EMAIL") or "admin@carecompany.com").strip().lower()
    password = os.getenv("ADMIN_PASSWORD") or ""

    if not email:
        logger.warning("Skipping admin seed: empty ADMIN_EMAIL")
        return
    if not password:
        logger.warning("Skipping admin seed: ADMIN_PASSWORD is empty")
        return

    result = await db.execute(select(User).where(User.email == email))
    existing = result.scalar_one_or_none()
    if existing:
        changed = False
        if existing.role != Role.ADMIN.value:
            existing.role = Role.ADMIN.value
            changed = True
        if not existing.is_active:
            existing.is_active = True
            changed = True
        if changed:
            await db.commit()
            logger.info("Restored bootstrap admin %s", email)
        return

    db.add(
        User(
            email=email,
            password_hash=hash_password(password),
            first_name=os.getenv("ADMIN_FIRST_NAME", "Admin"),
            last_name=os.getenv("ADMIN_LAST_NAME", "User"),
            role=Role.ADMIN.value,
            is_active=True,
            must_change_password=False,
        )
    )
    await db.commit()
    logger.info("Created bootstrap admin %s", email)
