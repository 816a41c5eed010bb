# create_admin.py
import asyncio
from getpass import getpass

from rental_api.core.security import get_password_hash
from rental_api.db.database import init_db, close_db
from rental_api.models.enum import UserRole
from rental_api.models.user import User


async def create_initial_admin():
    """Create the first admin account, already active."""
    print("--- Create Initial Admin User ---")
    await init_db()

    try:
        while True:
            email = input("Enter admin email: ").strip().lower()
            if email:
                break
            print("Email cannot be empty.")

        if await User.find_one({"email": email}):
            print(f"Error: a user with email '{email}' already exists.")
            return

        while True:
            password = getpass("Enter admin password: ")
            if len(password) < 8:
                print("Password must be at least 8 characters.")
                continue
            if password == getpass("Confirm admin password: "):
                break
            print("Passwords do not match. Please try again.")

        first_name = input("Enter first name: ").strip() or "Admin"
        last_name = input("Enter last name: ").strip() or "User"
        phone = input("Enter phone (10 digits): ").strip() or "0000000000"

        admin_user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            hashed_password=get_password_hash(password),
            role=UserRole.ADMIN,
            is_active=True,
        )
        await admin_user.insert()
        print(f"Admin user '{email}' created successfully!")
    finally:
        close_db()
        print("Database connection closed.")


if __name__ == "__main__":
    asyncio.run(create_initial_admin())
