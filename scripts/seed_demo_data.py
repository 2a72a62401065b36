#!/usr/bin/env python3
"""
Seed the database with demo data for the textbook indent workflow.

Creates one user per role in two branches, a class of students per branch
and a textbook catalog with opening stock. Indents are not seeded; create
them through the API so stock is reserved the normal way.

Usage:
    uv run python scripts/seed_demo_data.py --dry-run   # roll back at the end
    uv run python scripts/seed_demo_data.py --confirm   # write to the database

Requires: migrations applied (alembic upgrade head), database reachable.
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from textbook_indents.core.auth.models import User, UserRole
from textbook_indents.core.auth.password import hash_password
from textbook_indents.core.config import settings
from textbook_indents.core.database.session import async_session
from textbook_indents.modules.students.models import Student, StudentStatus
from textbook_indents.modules.textbooks.ledger import InventoryLedger
from textbook_indents.modules.textbooks.models import Textbook
from textbook_indents.shared.utils.money import round_money

DEMO_PASSWORD = "demo123"
ACADEMIC_YEAR = "2026-27"
BRANCHES = (1, 2)

# email prefix, full name, role
STAFF_DATA = [
    ("branchadmin", "Branch Administrator", UserRole.BRANCH_ADMIN),
    ("accounts", "Accounts Officer", UserRole.ACCOUNTANT),
    ("teacher", "Class Teacher", UserRole.TEACHER),
    ("office", "Front Office", UserRole.STAFF),
]

# admission suffix, full name, class, division
STUDENTS_DATA = [
    ("001", "Aarav Sharma", "Class 5", "A"),
    ("002", "Diya Patel", "Class 5", "A"),
    ("003", "Vihaan Reddy", "Class 5", "B"),
    ("004", "Ananya Iyer", "Class 6", "A"),
    ("005", "Kabir Singh", "Class 6", "B"),
    ("006", "Meera Nair", "Class 7", "A"),
]

# book code, title, subject, class, publisher, price, copies
TEXTBOOKS_DATA = [
    ("MAT5", "Mathematics Magic", "Mathematics", "Class 5", "NCERT", "65.00", 40),
    ("ENG5", "Marigold", "English", "Class 5", "NCERT", "55.00", 40),
    ("EVS5", "Looking Around", "EVS", "Class 5", "NCERT", "60.00", 35),
    ("MAT6", "Mathematics", "Mathematics", "Class 6", "NCERT", "70.00", 30),
    ("SCI6", "Science", "Science", "Class 6", "NCERT", "75.00", 30),
    ("HIN6", "Vasant Bhag 1", "Hindi", "Class 6", "NCERT", "50.00", 25),
    ("MAT7", "Mathematics", "Mathematics", "Class 7", "NCERT", "80.00", 20),
    ("ATL7", "Oxford School Atlas", "Geography", "Class 7", "Oxford", "395.00", 5),
]


async def seed_users(session: AsyncSession) -> int:
    """Create a super admin plus one user per role and branch. Returns the super admin id."""
    result = await session.execute(select(User).where(User.email == "admin@school.demo"))
    existing = result.scalar_one_or_none()
    if existing:
        print("  Users already exist, skip.")
        return existing.id

    pw = hash_password(DEMO_PASSWORD)
    admin = User(
        email="admin@school.demo",
        password_hash=pw,
        full_name="Super Admin",
        role=UserRole.SUPER_ADMIN.value,
        capabilities=[],
        is_active=True,
    )
    session.add(admin)
    users = [admin]
    for branch_id in BRANCHES:
        for prefix, full_name, role in STAFF_DATA:
            user = User(
                email=f"{prefix}{branch_id}@school.demo",
                password_hash=pw,
                full_name=f"{full_name} (Branch {branch_id})",
                role=role.value,
                branch_id=branch_id,
                capabilities=[],
                is_active=True,
            )
            session.add(user)
            users.append(user)
    await session.flush()
    print(f"  Created {len(users)} users.")
    return admin.id


async def seed_students(session: AsyncSession) -> None:
    result = await session.execute(select(Student).limit(1))
    if result.scalar_one_or_none():
        print("  Students already exist, skip.")
        return

    count = 0
    for branch_id in BRANCHES:
        for suffix, full_name, class_name, division in STUDENTS_DATA:
            session.add(
                Student(
                    branch_id=branch_id,
                    admission_number=f"B{branch_id}-{suffix}",
                    full_name=full_name,
                    class_name=class_name,
                    division=division,
                    status=StudentStatus.ACTIVE.value,
                )
            )
            count += 1
    await session.flush()
    print(f"  Created {count} students.")


async def seed_textbooks(session: AsyncSession, user_id: int) -> None:
    """Catalog textbooks with opening stock; each gets a receipt movement."""
    result = await session.execute(select(Textbook).limit(1))
    if result.scalar_one_or_none():
        print("  Textbooks already exist, skip.")
        return

    ledger = InventoryLedger(session)
    count = 0
    for branch_id in BRANCHES:
        for code, title, subject, class_name, publisher, price, copies in TEXTBOOKS_DATA:
            textbook = Textbook(
                branch_id=branch_id,
                academic_year=ACADEMIC_YEAR,
                book_code=code,
                title=title,
                subject=subject,
                class_name=class_name,
                publisher=publisher,
                price=round_money(Decimal(price)),
                quantity=copies,
                available=copies,
                version=0,
            )
            session.add(textbook)
            await session.flush()
            await ledger.receive(textbook, created_by_id=user_id, notes="Opening stock (demo)")
            count += 1
    print(f"  Created {count} textbooks with opening stock.")


async def run_seed(session: AsyncSession, dry_run: bool) -> None:
    admin_id = await seed_users(session)
    await seed_students(session)
    await seed_textbooks(session, admin_id)

    if dry_run:
        await session.rollback()
        print("\n[DRY-RUN] Rolled back, no data written.")
    else:
        await session.commit()
        print("\nSeed completed successfully.")


async def main() -> None:
    import argparse
    parser = argparse.ArgumentParser(description="Seed database with textbook indent demo data")
    parser.add_argument("--dry-run", action="store_true", help="Do not commit")
    parser.add_argument("--confirm", action="store_true", help="Commit changes")
    args = parser.parse_args()
    if not args.dry_run and not args.confirm:
        print("Use --dry-run or --confirm")
        sys.exit(1)

    print("Database:", settings.database_url.split("@")[-1] if "@" in settings.database_url else "?")
    print("Mode:", "DRY-RUN" if args.dry_run else "CONFIRM")
    async with async_session() as session:
        await run_seed(session, dry_run=args.dry_run)
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
