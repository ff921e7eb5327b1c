import asyncio
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ace.config import load_settings  # noqa: E402
from ace.storage import MongoStorage, StorageError  # noqa: E402


async def main() -> int:
    settings = load_settings()
    storage = MongoStorage(settings)

    if not await storage.ping():
        print(f"❌ Could not reach MongoDB at {settings.mongo_uri}")
        return 1

    try:
        await storage.ensure_indexes()
    except StorageError as e:
        print(f"❌ Index creation error: {e}")
        return 1

    print(f"✅ Indexes created in database '{settings.mongo_db}'.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
