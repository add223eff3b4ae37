"""
User Service - Handles user accounts and staff notes.

Emails are normalized (trimmed, lowercased) on every write and lookup.
Passwords are stored as bcrypt hashes.
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
import logging

from app.db.models import User, UserNote, UserRole
from app.domain.errors import NotFoundError, ConflictError, ForbiddenError
from app.services.notification_service import NotificationService
from app.utils.email_utils import normalize_email
from app.utils.password_hash import hash_password

logger = logging.getLogger(__name__)

# Fields callers may never overwrite through update()
PROTECTED_FIELDS = ("id", "created_at", "updated_at")


class UserService:
    """Service for managing users"""

    @staticmethod
    async def find_all(db: AsyncSession) -> List[User]:
        result = await db.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    @staticmethod
    async def find_one(db: AsyncSession, user_id: str) -> User:
        """
        Raises:
            NotFoundError: If the user doesn't exist
        """
        user = await UserService.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

    @staticmethod
    async def create(db: AsyncSession, values: dict) -> User:
        """
        Create a user.

        Args:
            values: Column values; "password" is plain text and gets hashed

        Raises:
            ConflictError: If the email is already registered
        """
        values = dict(values)
        values["email"] = normalize_email(values["email"])

        if await UserService.get_by_email(db, values["email"]):
            raise ConflictError("Email already registered")

        if values.get("password"):
            values["password"] = hash_password(values["password"])

        user = User(**values)
        db.add(user)
        await db.flush()

        logger.info(f"Created user: {user.id} (role: {user.role.value})")
        return user

    @staticmethod
    async def update(db: AsyncSession, user_id: str, values: dict) -> User:
        """
        Update a user. Changing the email notifies both the old and new
        address; notification failures are logged only.

        Raises:
            NotFoundError: If the user doesn't exist
            ConflictError: If the new email belongs to another user
        """
        user = await UserService.find_one(db, user_id)
        old_email = user.email

        new_email = normalize_email(values["email"]) if values.get("email") else None
        is_email_changing = bool(new_email) and new_email != old_email

        if is_email_changing and await UserService.get_by_email(db, new_email):
            raise ConflictError("Email address is already in use")

        for key, value in values.items():
            if key in PROTECTED_FIELDS or value is None:
                continue
            if key == "email":
                value = new_email
            elif key == "password":
                value = hash_password(value)
            setattr(user, key, value)

        await db.flush()
        logger.info(f"Updated user: {user.id}")

        if is_email_changing:
            await NotificationService.send_email_change_notifications(db, old_email, new_email, user.id)
            logger.info(f"Email change notifications sent for user {user.id}: {old_email} -> {new_email}")

        return user

    @staticmethod
    async def delete(db: AsyncSession, user_id: str) -> User:
        user = await UserService.find_one(db, user_id)
        await db.delete(user)
        await db.flush()
        logger.info(f"Deleted user: {user_id}")
        return user

    @staticmethod
    async def count_verified(db: AsyncSession) -> int:
        result = await db.execute(select(func.count(User.id)).where(User.is_email_verified.is_(True)))
        return result.scalar_one()


class UserNoteService:
    """Staff notes attached to users"""

    @staticmethod
    async def find_all_by_user_id(db: AsyncSession, user_id: str) -> List[UserNote]:
        """
        Notes for a user, newest first, with their creator loaded.

        Raises:
            NotFoundError: If the user doesn't exist
        """
        await UserService.find_one(db, user_id)
        result = await db.execute(
            select(UserNote)
            .options(selectinload(UserNote.created_by))
            .where(UserNote.user_id == user_id)
            .order_by(UserNote.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def create(db: AsyncSession, user_id: str, note: str, created_by_id: str) -> UserNote:
        await UserService.find_one(db, user_id)
        user_note = UserNote(user_id=user_id, note=note, created_by_id=created_by_id)
        db.add(user_note)
        await db.flush()
        logger.info(f"Created note {user_note.id} for user {user_id} by {created_by_id}")
        return user_note

    @staticmethod
    async def delete(db: AsyncSession, note_id: str, current_user: User) -> UserNote:
        """
        Delete a note. Allowed for the note's creator, any admin, and
        staff deleting a note not written by an admin.

        Raises:
            NotFoundError: If the note doesn't exist
            ForbiddenError: If the current user may not delete it
        """
        result = await db.execute(
            select(UserNote).options(selectinload(UserNote.created_by)).where(UserNote.id == note_id)
        )
        note = result.scalar_one_or_none()
        if not note:
            raise NotFoundError(f"Note with ID {note_id} not found")

        is_creator = note.created_by_id == current_user.id
        is_admin = current_user.role == UserRole.ADMIN
        is_staff_deleting_non_admin = (
            current_user.role == UserRole.STAFF and note.created_by.role != UserRole.ADMIN
        )

        if not (is_creator or is_admin or is_staff_deleting_non_admin):
            raise ForbiddenError("You do not have permission to delete this note")

        await db.delete(note)
        await db.flush()
        return note
