"""Shared content cache (news, sports, stocks) used during script generation."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
from uuid import uuid4

import asyncpg

from daystart_jobs.errors import JobValidationError
from daystart_jobs.models import ContentBlock, ContentType


class ContentBlockStore:
    """
    Cross-user cache of upstream content.

    Blocks are keyed by content type and region or league, expire on their
    own schedule and are never locked by job operations.
    """

    def __init__(self, db_pool: asyncpg.Pool, default_ttl: timedelta = timedelta(hours=12)):
        self.db_pool = db_pool
        self.default_ttl = default_ttl

    async def put_block(
        self,
        content_type: Union[ContentType, str],
        raw_payload: dict[str, Any],
        region: Optional[str] = None,
        league: Optional[str] = None,
        processed_content: Optional[dict[str, Any]] = None,
        importance_score: int = 5,
        published_at: Optional[datetime] = None,
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> ContentBlock:
        """Cache a freshly fetched block of content."""
        content_type = _validate_content_type(content_type)
        if not 1 <= importance_score <= 10:
            raise JobValidationError(
                f"importance_score must be between 1 and 10, got {importance_score}"
            )

        now = now or datetime.now(timezone.utc)
        expires_at = now + (ttl or self.default_ttl)

        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO content_blocks (
                    id, content_type, region, league, raw_payload, processed_content,
                    importance_score, published_at, created_at, expires_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING *
                """,
                uuid4(),
                content_type.value,
                region,
                league,
                json.dumps(raw_payload),
                json.dumps(processed_content) if processed_content is not None else None,
                importance_score,
                published_at,
                now,
                expires_at,
            )

        return self._row_to_block(row)

    async def get_fresh_blocks(
        self,
        content_type: Union[ContentType, str],
        region: Optional[str] = None,
        league: Optional[str] = None,
        limit: int = 10,
        now: Optional[datetime] = None,
    ) -> list[ContentBlock]:
        """Return unexpired blocks, most important and newest first."""
        content_type = _validate_content_type(content_type)
        now = now or datetime.now(timezone.utc)

        query = "SELECT * FROM content_blocks WHERE content_type = $1 AND expires_at > $2"
        params: list[Any] = [content_type.value, now]
        param_idx = 3

        if region:
            query += f" AND region = ${param_idx}"
            params.append(region)
            param_idx += 1

        if league:
            query += f" AND league = ${param_idx}"
            params.append(league)
            param_idx += 1

        query += f" ORDER BY importance_score DESC, created_at DESC LIMIT ${param_idx}"
        params.append(limit)

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [self._row_to_block(row) for row in rows]

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired blocks and return how many were removed."""
        now = now or datetime.now(timezone.utc)
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM content_blocks WHERE expires_at <= $1", now
            )

        # Extract count from result string like "DELETE 5"
        return int(result.split()[-1]) if result else 0

    def _row_to_block(self, row: asyncpg.Record) -> ContentBlock:
        raw_payload = row["raw_payload"]
        processed_content = row["processed_content"]
        return ContentBlock(
            id=row["id"],
            content_type=ContentType(row["content_type"]),
            raw_payload=json.loads(raw_payload)
            if isinstance(raw_payload, str)
            else raw_payload,
            expires_at=row["expires_at"],
            region=row["region"],
            league=row["league"],
            processed_content=json.loads(processed_content)
            if processed_content and isinstance(processed_content, str)
            else processed_content,
            importance_score=row["importance_score"],
            published_at=row["published_at"],
            created_at=row["created_at"],
        )


def _validate_content_type(content_type: Union[ContentType, str]) -> ContentType:
    try:
        return ContentType(content_type)
    except ValueError as e:
        raise JobValidationError(f"Invalid content_type: {content_type}") from e
