import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

import asyncpg

from app.schemas.lecture import ContextSlide, Lecture, LectureStatus, Slide
from app.services.store.base import (
    LECTURE_PATCH_COLUMNS,
    SLIDE_PATCH_COLUMNS,
    RecordStore,
    SlideGuard,
    SlideKey,
    validate_patch,
)
from app.utils.sanitize import sanitize_content

SLIDE_COLUMNS = "id, lecture_id, slide_number, base64, content, generate_status"
LECTURE_COLUMNS = "id, user_id, title, num_slides, status"


def _key_sql(key: SlideKey, first_param: int) -> tuple[str, list]:
    if key.id is not None:
        return f"id = ${first_param}", [key.id]
    return (
        f"lecture_id = ${first_param} AND slide_number = ${first_param + 1}",
        [key.lecture_id, key.slide_number],
    )


def _set_sql(patch: Dict[str, Any], first_param: int) -> tuple[str, list]:
    assignments = []
    params = []
    for offset, (column, value) in enumerate(patch.items()):
        if column == "content":
            value = sanitize_content(value)
        assignments.append(f"{column} = ${first_param + offset}")
        params.append(value)
    assignments.append("updated_at = NOW()")
    return ", ".join(assignments), params


def _affected_rows(status: str) -> int:
    """Parses asyncpg's command tag, e.g. 'UPDATE 1'."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        logging.warning(f"Unexpected command status from Postgres: {status!r}")
        return 0


def _to_slide(record: asyncpg.Record) -> Slide:
    return Slide(
        id=record["id"],
        lecture_id=record["lecture_id"],
        slide_number=record["slide_number"],
        base64=record["base64"],
        content=list(record["content"] or []),
        generate_status=record["generate_status"],
    )


def _to_vector(values: List[float]) -> str:
    # pgvector text input format
    return "[" + ",".join(map(str, values)) + "]"


class PostgresRecordStore(RecordStore):
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def connect(
        cls, dsn: str, min_size: int = 1, max_size: int = 10
    ) -> "PostgresRecordStore":
        if not dsn:
            raise ValueError("POSTGRES_DSN is not configured.")
        pool = await asyncpg.create_pool(
            dsn, min_size=min_size, max_size=max_size, statement_cache_size=0
        )
        return cls(pool)

    async def create_lecture(
        self,
        title: str,
        user_id: Optional[UUID] = None,
        status: LectureStatus = LectureStatus.processing,
    ) -> Lecture:
        record = await self.pool.fetchrow(
            f"""
            INSERT INTO lectures (user_id, title, status)
            VALUES ($1, $2, $3)
            RETURNING {LECTURE_COLUMNS}
            """,
            user_id,
            title,
            status.value,
        )
        return Lecture(**dict(record))

    async def get_lecture(self, lecture_id: UUID) -> Optional[Lecture]:
        record = await self.pool.fetchrow(
            f"SELECT {LECTURE_COLUMNS} FROM lectures WHERE id = $1", lecture_id
        )
        return Lecture(**dict(record)) if record else None

    async def update_lecture(self, lecture_id: UUID, patch: Dict[str, Any]) -> None:
        patch = validate_patch(patch, LECTURE_PATCH_COLUMNS)
        set_sql, params = _set_sql(patch, 2)
        await self.pool.execute(
            f"UPDATE lectures SET {set_sql} WHERE id = $1", lecture_id, *params
        )

    async def create_slide(
        self, lecture_id: UUID, slide_number: int, base64: Optional[str] = None
    ) -> Slide:
        record = await self.pool.fetchrow(
            f"""
            INSERT INTO slides (lecture_id, slide_number, base64)
            VALUES ($1, $2, $3)
            ON CONFLICT (lecture_id, slide_number) DO UPDATE
            SET base64 = EXCLUDED.base64,
                updated_at = NOW()
            RETURNING {SLIDE_COLUMNS}
            """,
            lecture_id,
            slide_number,
            base64,
        )
        return _to_slide(record)

    async def delete_slides(self, lecture_id: UUID) -> int:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "DELETE FROM slide_embeddings WHERE lecture_id = $1", lecture_id
                )
                status = await conn.execute(
                    "DELETE FROM slides WHERE lecture_id = $1", lecture_id
                )
        return _affected_rows(status)

    async def get_slide(self, key: SlideKey) -> Optional[Slide]:
        where_sql, params = _key_sql(key, 1)
        record = await self.pool.fetchrow(
            f"SELECT {SLIDE_COLUMNS} FROM slides WHERE {where_sql}", *params
        )
        return _to_slide(record) if record else None

    async def update_slide_where(
        self, key: SlideKey, guard: SlideGuard, patch: Dict[str, Any]
    ) -> int:
        patch = validate_patch(patch, SLIDE_PATCH_COLUMNS)
        set_sql, set_params = _set_sql(patch, 1)
        where_sql, where_params = _key_sql(key, len(set_params) + 1)
        guard_sql, guard_params = guard.to_sql(len(set_params) + len(where_params) + 1)
        # A single UPDATE re-checks the guard after taking the row lock, so
        # concurrent writers serialise and only the first one matches.
        status = await self.pool.execute(
            f"UPDATE slides SET {set_sql} WHERE {where_sql} AND {guard_sql}",
            *set_params,
            *where_params,
            *guard_params,
        )
        return _affected_rows(status)

    async def update_slide(self, key: SlideKey, patch: Dict[str, Any]) -> None:
        patch = validate_patch(patch, SLIDE_PATCH_COLUMNS)
        set_sql, set_params = _set_sql(patch, 1)
        where_sql, where_params = _key_sql(key, len(set_params) + 1)
        await self.pool.execute(
            f"UPDATE slides SET {set_sql} WHERE {where_sql}", *set_params, *where_params
        )

    async def get_context_slides(
        self, lecture_id: UUID, slide_number: int, limit: int
    ) -> List[ContextSlide]:
        records = await self.pool.fetch(
            """
            SELECT slide_number, content[1] AS summary, base64
            FROM slides
            WHERE lecture_id = $1
              AND slide_number < $2
              AND cardinality(content) > 0
            ORDER BY slide_number DESC
            LIMIT $3
            """,
            lecture_id,
            slide_number,
            limit,
        )
        return [ContextSlide(**dict(record)) for record in records]

    async def upsert_slide_embedding(
        self, lecture_id: UUID, slide_number: int, vector: List[float]
    ) -> None:
        await self.pool.execute(
            """
            INSERT INTO slide_embeddings (lecture_id, slide_number, vector)
            VALUES ($1, $2, $3::vector)
            ON CONFLICT (lecture_id, slide_number) DO UPDATE
            SET vector = EXCLUDED.vector,
                updated_at = NOW()
            """,
            lecture_id,
            slide_number,
            _to_vector(vector),
        )

    async def search_slide_embeddings(
        self,
        lecture_id: UUID,
        vector: List[float],
        before_slide_number: int,
        limit: int,
    ) -> List[ContextSlide]:
        records = await self.pool.fetch(
            """
            SELECT s.slide_number, s.content[1] AS summary, s.base64
            FROM slide_embeddings e
            JOIN slides s
              ON s.lecture_id = e.lecture_id AND s.slide_number = e.slide_number
            WHERE e.lecture_id = $2
              AND e.slide_number < $3
              AND cardinality(s.content) > 0
            ORDER BY e.vector <=> $1::vector
            LIMIT $4
            """,
            _to_vector(vector),
            lecture_id,
            before_slide_number,
            limit,
        )
        return [ContextSlide(**dict(record)) for record in records]

    async def close(self) -> None:
        await self.pool.close()
