"""
User record store backed by a single PostgreSQL table.

Each row is the whole user document: scalar cooldown timestamps plus the
`tasks` and `interactions` JSONB arrays. Every mutation is one statement, so
appends are atomic while read-decide-write sequences in the services are not.
"""

from datetime import datetime
from typing import Any

from psycopg import sql
from psycopg.types.json import Jsonb

from nudge.db.helpers import DatabaseError, execute_query, fetch_one, with_db_retry
from nudge.infrastructure.observability.logging import get_logger
from nudge.models.domain.user_domain import Interaction, Task, UserRecord
from nudge.security.hashing import email_log_ref

logger = get_logger(__name__)

LEASE_FIELDS = frozenset({"last_access_date", "last_notification_date", "last_survey_date"})

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    email TEXT PRIMARY KEY,
    initial BOOLEAN NOT NULL DEFAULT TRUE,
    last_access_date TIMESTAMPTZ,
    last_notification_date TIMESTAMPTZ,
    last_survey_date TIMESTAMPTZ,
    tasks JSONB NOT NULL DEFAULT '[]'::jsonb,
    interactions JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

# Updates are addressed by element id, so older elements without one get a
# stable id once, instead of a fresh random one on every read.
BACKFILL_IDS_SQL = sql.SQL(
    """
UPDATE users
SET {column} = (
    SELECT jsonb_agg(
        CASE
            WHEN elem ? 'id' THEN elem
            ELSE elem || jsonb_build_object('id', gen_random_uuid()::text)
        END
        ORDER BY ord
    )
    FROM jsonb_array_elements({column}) WITH ORDINALITY AS t(elem, ord)
)
WHERE EXISTS (
    SELECT 1 FROM jsonb_array_elements({column}) AS e(elem)
    WHERE NOT (elem ? 'id')
)
"""
)

DOCUMENT_ARRAYS = ("tasks", "interactions")


class UserRepository:
    """Reads and writes user documents. All methods raise DatabaseError."""

    async def ensure_schema(self) -> None:
        await execute_query(SCHEMA_SQL)

        backfilled = 0
        for column in DOCUMENT_ARRAYS:
            query = BACKFILL_IDS_SQL.format(column=sql.Identifier(column))
            backfilled += await execute_query(query)
        logger.info("User schema ensured", backfilled_rows=backfilled)

    @with_db_retry(max_retries=2, base_delay=0.1)
    async def get_user(self, email: str) -> UserRecord | None:
        query = """
        SELECT email, initial, last_access_date, last_notification_date,
               last_survey_date, tasks, interactions, created_at
        FROM users
        WHERE email = %s
        """
        row = await fetch_one(query, (email,))
        if not row:
            return None
        return self._to_domain(row)

    async def create_user(self, email: str, now: datetime) -> bool:
        """Insert a fresh record. False when a concurrent poll created it first."""
        query = """
        INSERT INTO users (email, initial, last_access_date)
        VALUES (%s, TRUE, %s)
        ON CONFLICT (email) DO NOTHING
        """
        created = await execute_query(query, (email, now)) > 0
        logger.info("User record created", user_ref=email_log_ref(email), created=created)
        return created

    async def touch(self, email: str, field: str, now: datetime) -> bool:
        """Unconditionally write a cooldown timestamp."""
        query = sql.SQL("UPDATE users SET {field} = %s WHERE email = %s").format(
            field=sql.Identifier(self._lease_field(field))
        )
        return await execute_query(query, (now, email)) > 0

    async def compare_and_set(
        self, email: str, field: str, expected: datetime | None, now: datetime
    ) -> bool:
        """Write a cooldown timestamp only if it still holds the value read earlier."""
        query = sql.SQL(
            "UPDATE users SET {field} = %s WHERE email = %s AND {field} IS NOT DISTINCT FROM %s"
        ).format(field=sql.Identifier(self._lease_field(field)))
        return await execute_query(query, (now, email, expected)) > 0

    async def append_tasks(self, email: str, tasks: list[Task]) -> int:
        if not tasks:
            return 0
        payload = Jsonb([task.model_dump(mode="json", exclude_none=True) for task in tasks])
        query = "UPDATE users SET tasks = tasks || %s WHERE email = %s"
        if await execute_query(query, (payload, email)) == 0:
            raise DatabaseError("User record missing", operation="append_tasks")
        return len(tasks)

    async def append_interaction(self, email: str, interaction: Interaction) -> None:
        payload = Jsonb([interaction.model_dump(mode="json", exclude_none=True)])
        query = "UPDATE users SET interactions = interactions || %s WHERE email = %s"
        if await execute_query(query, (payload, email)) == 0:
            raise DatabaseError("User record missing", operation="append_interaction")

    async def set_survey(self, email: str, interaction_id: str, feedback: Any) -> bool:
        """
        Fill the survey of one interaction, only if it is still absent.

        Returns False when no open interaction with that id exists, which
        includes losing a race against a concurrent submission.
        """
        query = """
        UPDATE users
        SET interactions = (
            SELECT jsonb_agg(
                CASE
                    WHEN elem->>'id' = %s AND NOT (elem ? 'survey')
                    THEN elem || jsonb_build_object('survey', %s::jsonb)
                    ELSE elem
                END
                ORDER BY ord
            )
            FROM jsonb_array_elements(interactions) WITH ORDINALITY AS t(elem, ord)
        )
        WHERE email = %s
          AND EXISTS (
            SELECT 1 FROM jsonb_array_elements(interactions) AS e(elem)
            WHERE elem->>'id' = %s AND NOT (elem ? 'survey')
          )
        """
        params = (interaction_id, Jsonb(feedback), email, interaction_id)
        return await execute_query(query, params) > 0

    async def clear_initial(self, email: str) -> bool:
        query = "UPDATE users SET initial = FALSE WHERE email = %s"
        return await execute_query(query, (email,)) > 0

    @staticmethod
    def _lease_field(field: str) -> str:
        if field not in LEASE_FIELDS:
            raise ValueError(f"Unknown lease field: {field}")
        return field

    @staticmethod
    def _to_domain(row: dict[str, Any]) -> UserRecord:
        # Older documents may lack any of the optional keys
        return UserRecord(
            email=row["email"],
            initial=row.get("initial", True) is not False,
            last_access_date=row.get("last_access_date"),
            last_notification_date=row.get("last_notification_date"),
            last_survey_date=row.get("last_survey_date"),
            tasks=row.get("tasks") or [],
            interactions=row.get("interactions") or [],
            created_at=row.get("created_at"),
        )


# Global instance
user_repository = UserRepository()
