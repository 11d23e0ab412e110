import os
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from dotenv import load_dotenv

from app.models import Base

# Load environment variables
load_dotenv()

# PostgreSQL Database
POSTGRES_URI = os.getenv("POSTGRES_URI")
if POSTGRES_URI:
    engine = create_async_engine(POSTGRES_URI, echo=os.getenv("SQL_ECHO", "false").lower() == "true")
    AsyncSessionLocal = async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )
else:
    engine = None
    AsyncSessionLocal = None


# Database dependency
async def get_db():
    if AsyncSessionLocal is not None:
        async with AsyncSessionLocal() as session:
            yield session
    else:
        yield None


async def create_all_tables():
    if engine is None:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
