#!/usr/bin/env python3
"""
Database initialization script for TransferGuard
Creates all tables in PostgreSQL, seeds a demo admin and customer with some
transfer history, and prints access tokens for both.
"""
import asyncio
import os
from datetime import timedelta
from decimal import Decimal

from dotenv import load_dotenv
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession

load_dotenv()

from app.models import Base, User, KycStatus, Transaction, TransactionStatus, TransactionType, TransferType  # noqa: E402
from app.models.user import utcnow  # noqa: E402
from app.services.token_service import create_token_for_user  # noqa: E402


async def _get_or_create_user(session: AsyncSession, **fields) -> User:
    result = await session.execute(select(User).where(User.email == fields["email"]))
    user = result.scalars().first()
    if user:
        print(f"✅ {fields['email']} already exists with ID: {user.id}")
        return user
    user = User(**fields)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    print(f"✅ Created {fields['email']} with ID: {user.id}")
    return user


async def create_sample_data(session: AsyncSession):
    """Create demo users and a few completed external transfers"""
    try:
        admin = await _get_or_create_user(
            session,
            name="Demo Admin",
            email="admin@example.com",
            role="admin",
            balance=Decimal("0"),
            kyc_status=KycStatus.approved,
        )
        customer = await _get_or_create_user(
            session,
            name="Demo Customer",
            email="customer@example.com",
            role="user",
            balance=Decimal("50000"),
            kyc_status=KycStatus.approved,
            risk_level="LOW",
        )

        result = await session.execute(select(func.count(Transaction.id)).where(Transaction.user_id == customer.id))
        if (result.scalar() or 0) == 0:
            print("💳 Creating sample transfer history...")
            now = utcnow()
            for days_ago, amount in ((3, "1200.00"), (7, "800.00"), (12, "2500.00")):
                created = now - timedelta(days=days_ago)
                session.add(Transaction(
                    user_id=customer.id,
                    type=TransactionType.debit.value,
                    amount=Decimal(amount),
                    description="External bank transfer to Chase Bank",
                    status=TransactionStatus.completed.value,
                    transfer_type=TransferType.external_bank.value,
                    bank_name="Chase Bank",
                    meta={},
                    created_at=created,
                    updated_at=created,
                ))
            await session.commit()

        print(f"🔑 Admin token:    {create_token_for_user(admin, 86400)}")
        print(f"🔑 Customer token: {create_token_for_user(customer, 86400)}")
    except Exception as e:
        print(f"❌ Error creating sample data: {e}")
        await session.rollback()


async def create_tables():
    """Create all database tables"""
    postgres_uri = os.getenv("POSTGRES_URI")
    if not postgres_uri:
        print("❌ POSTGRES_URI not found in environment variables")
        return

    engine = create_async_engine(postgres_uri, echo=False)
    try:
        print("📝 Creating tables...")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("✅ All tables created successfully!")

        async with AsyncSession(engine, expire_on_commit=False) as session:
            await create_sample_data(session)
    except Exception as e:
        print(f"❌ Error creating tables: {e}")
        raise
    finally:
        await engine.dispose()


if __name__ == "__main__":
    print("🚀 Initializing TransferGuard database...")
    asyncio.run(create_tables())
    print("🎉 Database initialization complete!")
