"""Provision sample coaches. Run once per environment: `careercoach-seed`."""
import logging
from typing import Any, Dict

from pymongo.database import Database as MongoDatabase

from database import Database, utcnow
from fallback import SAMPLE_COACHES
from schemas import Coach
from settings import DATABASE_NAME, DATABASE_SOCKET_TIMEOUT_MS, DATABASE_TIMEOUT_MS, DATABASE_URL, LOG_LEVEL

logger = logging.getLogger("careercoach.seed")


def seed_coaches(db: MongoDatabase) -> Dict[str, Any]:
    if db["coach"].count_documents({}) > 0:
        return {"seeded": False, "message": "Coaches already exist"}
    now = utcnow()
    docs = []
    for sample in SAMPLE_COACHES:
        doc = Coach(**sample).model_dump()
        doc.update({"created_at": now, "updated_at": now})
        docs.append(doc)
    db["coach"].insert_many(docs)
    logger.info("Seeded %d coaches", len(docs))
    return {"seeded": True, "count": len(docs)}


def main():
    logging.basicConfig(level=LOG_LEVEL)
    database = Database(DATABASE_URL, DATABASE_NAME, timeout_ms=DATABASE_TIMEOUT_MS,
                        socket_timeout_ms=DATABASE_SOCKET_TIMEOUT_MS)
    try:
        result = seed_coaches(database.get())
    finally:
        database.close()
    print(result)


if __name__ == "__main__":
    main()
