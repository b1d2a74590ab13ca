import asyncio
import logging
from sqlalchemy.ext.asyncio import AsyncEngine
from app.core.database import engine
from app.models import *  # Import all models
from app.models.base import Base
from app.db.immutability import register_immutability_listeners

logger = logging.getLogger(__name__)

async def create_tables(bind: AsyncEngine = engine):
    """Create all database tables"""
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("✅ Database tables created successfully")

    except Exception as e:
        logger.error(f"❌ Error creating tables: {str(e)}")
        raise

async def init_db():
    """Initialize the database"""
    try:
        logger.info("🗄️  Initializing database...")

        register_immutability_listeners()
        await create_tables()

        logger.info("✅ Database initialized successfully")

    except Exception as e:
        logger.error(f"❌ Database initialization failed: {str(e)}")
        raise

if __name__ == "__main__":
    asyncio.run(init_db())
