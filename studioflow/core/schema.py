"""Document store schema management (code-first approach)."""

import logging

from studioflow.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "users",
    "projects",
    "tasks",
    "notifications",
]

# Document fields that get an expression index, per collection
INDEXED_FIELDS: dict[str, list[str]] = {
    "users": ["organization_id", "team"],
    "projects": ["organization_id"],
    "tasks": ["organization_id", "project_id", "assigned_designer", "design_lead", "status"],
    "notifications": ["user_id", "expires_at"],
}


def _table_statements(collection: str) -> list[str]:
    """CREATE statements for one collection table and its indexes."""
    statements = [f"CREATE TABLE IF NOT EXISTS {collection} (id TEXT PRIMARY KEY, data TEXT NOT NULL)"]
    statements.extend(
        f"CREATE INDEX IF NOT EXISTS idx_{collection}_{field} ON {collection} (json_extract(data, '$.{field}'))"
        for field in INDEXED_FIELDS.get(collection, [])
    )
    return statements


async def init_db(*, db_path: str | None = None) -> None:
    """Create every collection table and index if missing."""
    conn = await db_client.get_connection(db_path=db_path)
    for collection in COLLECTIONS:
        for statement in _table_statements(collection):
            await conn.execute(statement)
    logger.info("Document store schema initialized", extra={"collections": COLLECTIONS})
