#!/usr/bin/env python3
"""
Create a dashboard user.
Run from backend/: python -m scripts.create_user email@example.com 'password' ["Full Name"]
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


async def main(email: str, password: str, full_name: str | None):
    from popdash.database import async_session, init_db
    from popdash.models import User
    from popdash.services.auth_service import hash_password
    from sqlalchemy import select

    await init_db()
    async with async_session() as db:
        r = await db.execute(select(User).where(User.email == email.lower()))
        if r.scalar_one_or_none():
            print(f"User already exists: {email}")
            sys.exit(0)

        user = User(
            email=email.lower(),
            password_hash=hash_password(password),
            full_name=full_name,
            is_active=True,
        )
        db.add(user)
        await db.commit()
        print(f"Created user: {user.email} ({user.id})")


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python -m scripts.create_user <email> <password> [full name]")
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None))
