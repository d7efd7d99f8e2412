from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url, tz_aware=True)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for the contract and signature collections."""
        try:
            await self.db.form_answers.create_index("contract_id", unique=True)

            # Invitations - token lookup, per-signer history, per-contract roster
            try:
                await self.db.signature_invitations.create_index("invitation_token", unique=True)
            except Exception:
                pass  # Index may already exist with different options
            await self.db.signature_invitations.create_index("invitation_id", unique=True)
            await self.db.signature_invitations.create_index(
                [("contract_id", 1), ("signer_type", 1), ("signer_id", 1), ("sequence", -1)]
            )
            await self.db.signature_invitations.create_index([("contract_id", 1), ("status", 1)])

            # Signing aggregate and sequence counter, one per contract
            await self.db.contract_signatures.create_index("contract_id", unique=True)
            await self.db.wizard_sessions.create_index("contract_id", unique=True)

            await self.db.audit_logs.create_index([("contract_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])

            await self.db.message_logs.create_index([("created_at", -1)])
            await self.db.message_logs.create_index([("contract_id", 1), ("created_at", -1)])
            await self.db.message_logs.create_index([("status", 1), ("created_at", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

@asynccontextmanager
async def get_db_context():
    """Context manager for standalone scripts to access the database.

    Usage in scripts:
        async with get_db_context() as db:
            await db.form_answers.find_one(...)
    """
    client = None
    try:
        mongo_url = os.environ['MONGO_URL']
        db_name = os.environ['DB_NAME']
        client = AsyncIOMotorClient(mongo_url, tz_aware=True)
        db = client[db_name]
        await db.command("ping")
        logger.info(f"Script connected to MongoDB: {db_name}")
        yield db
    finally:
        if client:
            client.close()
            logger.info("Script MongoDB connection closed")
