#!/usr/bin/env python3
"""
CLI tool to manage accounts without going through the web login flow.

Usage:
    python -m app.cli.manage_users create --email admin@example.com --role ADMIN --first-name Ada --last-name Admin
    python -m app.cli.manage_users create --email lead@example.com --role STAFF --interactive
    python -m app.cli.manage_users list
    python -m app.cli.manage_users list --role STAFF
    python -m app.cli.manage_users change-password --email admin@example.com
    python -m app.cli.manage_users set-role --email lead@example.com --role ADMIN

Examples:
    # Bootstrap the first admin on a fresh database (prints a generated password)
    python -m app.cli.manage_users create --email admin@example.com --role ADMIN \\
        --first-name Ada --last-name Admin

    # Demote an admin to staff
    python -m app.cli.manage_users set-role --email ada@example.com --role STAFF
"""
import asyncio
import argparse
import sys
import getpass
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from app.db import connection
from app.db.models import User, UserRole
from app.domain.errors import DomainError
from app.services.user_service import UserService
from app.utils.password_hash import is_strong_password

PASSWORD_RULES = "Password must be at least 8 characters with an uppercase letter, a lowercase letter and a number"


@asynccontextmanager
async def open_session(database_url: Optional[str] = None):
    """Initialize the database, yield a session and commit it on success."""
    await connection.init_db(database_url)
    try:
        async with connection.async_session_maker() as session:
            yield session
            await session.commit()
    finally:
        await connection.close_db()


def prompt_password() -> Optional[str]:
    password = getpass.getpass("Enter password: ")
    password_confirm = getpass.getpass("Confirm password: ")

    if password != password_confirm:
        print("[ERROR] Passwords do not match")
        return None
    if not is_strong_password(password):
        print(f"[ERROR] {PASSWORD_RULES}")
        return None
    return password


def generate_password() -> str:
    # token_urlsafe may lack a digit or a case, so pin one of each
    return f"{secrets.token_urlsafe(12)}Aa1"


async def create_user(email: str, role: UserRole, first_name: str, last_name: str,
                      password: Optional[str] = None, interactive: bool = False,
                      database_url: Optional[str] = None) -> Optional[User]:
    """Create a verified account with the given role"""
    if interactive:
        print(f"Creating {role.value} account '{email}'")
        password = prompt_password()
        if password is None:
            return None
    elif password:
        if not is_strong_password(password):
            print(f"[ERROR] {PASSWORD_RULES}")
            return None
    else:
        password = generate_password()
        print("ℹ️  No password provided, generating random password")

    try:
        async with open_session(database_url) as session:
            user = await UserService.create(session, {
                "email": email,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
                "role": role,
                "is_email_verified": True,
            })
    except DomainError as e:
        print(f"[ERROR] {e.message}")
        return None

    print("\n" + "=" * 70)
    print("[SUCCESS] User created successfully!")
    print("=" * 70)
    print()
    print(f"Email: {user.email}")
    if not interactive:
        print(f"Password: {password}")
        print()
        print("⚠️  SAVE THIS PASSWORD - It will not be shown again!")
    print()
    print("User Details:")
    print(f"  ID: {user.id}")
    print(f"  Name: {user.first_name} {user.last_name}")
    print(f"  Role: {user.role.value}")
    print()
    print("=" * 70)
    return user


async def list_users(role: Optional[UserRole] = None, database_url: Optional[str] = None) -> list:
    """List accounts, optionally only one role"""
    async with open_session(database_url) as session:
        users = await UserService.find_all(session)

    if role:
        users = [user for user in users if user.role == role]

    if not users:
        print("No users found.")
        return []

    print("\n" + "=" * 70)
    print("Users:")
    print("=" * 70)
    print()

    for user in users:
        verified = "Verified" if user.is_email_verified else "Unverified"
        print(f"  - {user.email}")
        print(f"    ID: {user.id}")
        print(f"    Role: {user.role.value}")
        print(f"    Status: {verified}")
        print()

    print(f"Total users: {len(users)}")
    print("=" * 70)
    return users


async def change_password(email: str, new_password: Optional[str] = None,
                          database_url: Optional[str] = None) -> bool:
    """Set a new password; prompts when none is given"""
    if new_password is None:
        print(f"Changing password for '{email}'")
        new_password = prompt_password()
        if new_password is None:
            return False
    elif not is_strong_password(new_password):
        print(f"[ERROR] {PASSWORD_RULES}")
        return False

    async with open_session(database_url) as session:
        user = await UserService.get_by_email(session, email)
        if not user:
            print(f"[ERROR] User '{email}' not found")
            return False
        await UserService.update(session, user.id, {"password": new_password})

    print(f"[SUCCESS] Password updated successfully for '{email}'")
    return True


async def set_role(email: str, role: UserRole, database_url: Optional[str] = None) -> bool:
    async with open_session(database_url) as session:
        user = await UserService.get_by_email(session, email)
        if not user:
            print(f"[ERROR] User '{email}' not found")
            return False
        old_role = user.role
        await UserService.update(session, user.id, {"role": role})

    print(f"[SUCCESS] '{email}' changed from {old_role.value} to {role.value}")
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Manage camp registration accounts',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    roles = [role.value for role in UserRole]

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Create user command
    create_parser = subparsers.add_parser('create', help='Create a verified account')
    create_parser.add_argument('--email', required=True, help='Login email')
    create_parser.add_argument('--role', choices=roles, default=UserRole.PARTICIPANT.value, help='Account role')
    create_parser.add_argument('--first-name', default='Camp', help='First name')
    create_parser.add_argument('--last-name', default='Admin', help='Last name')
    create_parser.add_argument('--password', help='Password (if not provided, will generate random)')
    create_parser.add_argument('--interactive', action='store_true', help='Prompt for password interactively')

    # List users command
    list_parser = subparsers.add_parser('list', help='List accounts')
    list_parser.add_argument('--role', choices=roles, help='Only show this role')

    # Change password command
    change_password_parser = subparsers.add_parser('change-password', help='Change an account password')
    change_password_parser.add_argument('--email', required=True, help='Login email')

    # Set role command
    set_role_parser = subparsers.add_parser('set-role', help='Change an account role')
    set_role_parser.add_argument('--email', required=True, help='Login email')
    set_role_parser.add_argument('--role', choices=roles, required=True, help='New role')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Execute command
    if args.command == 'create':
        user = asyncio.run(create_user(
            args.email, UserRole(args.role), args.first_name, args.last_name, args.password, args.interactive,
        ))
        sys.exit(0 if user else 1)
    elif args.command == 'list':
        asyncio.run(list_users(UserRole(args.role) if args.role else None))
    elif args.command == 'change-password':
        sys.exit(0 if asyncio.run(change_password(args.email)) else 1)
    elif args.command == 'set-role':
        sys.exit(0 if asyncio.run(set_role(args.email, UserRole(args.role))) else 1)


if __name__ == '__main__':
    main()
