"""Vector store client backed by Supabase pgvector."""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from supabase import create_client, Client

from errors import ErrorDetail, StoreError
from config import SUPABASE_URL, SUPABASE_KEY, VECTOR_TABLE, UPSERT_BATCH_SIZE

logger = logging.getLogger(__name__)

# Expected database objects (run once in the Supabase SQL editor):
#
#   CREATE EXTENSION IF NOT EXISTS vector;
#
#   CREATE TABLE document_chunks (
#     id text PRIMARY KEY,
#     metadata jsonb NOT NULL DEFAULT '{}'::jsonb,
#     embedding vector(768) NOT NULL
#   );
#
#   CREATE OR REPLACE FUNCTION match_chunks(
#     query_embedding vector(768),
#     match_count int,
#     filter jsonb DEFAULT '{}'::jsonb,
#     include_embedding boolean DEFAULT false
#   )
#   RETURNS TABLE (id text, metadata jsonb, embedding vector(768), similarity float)
#   LANGUAGE plpgsql
#   AS $$
#   BEGIN
#     RETURN QUERY
#     SELECT
#       document_chunks.id,
#       document_chunks.metadata,
#       CASE WHEN include_embedding THEN document_chunks.embedding END,
#       1 - (document_chunks.embedding <=> query_embedding) AS similarity
#     FROM document_chunks
#     WHERE document_chunks.metadata @> filter
#     ORDER BY document_chunks.embedding <=> query_embedding
#     LIMIT match_count;
#   END;
#   $$;


@dataclass
class StoreMatch:
    """One nearest-neighbour match returned by the store."""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    values: Optional[List[float]] = None


@dataclass
class StoreStats:
    vector_count: int


class VectorStore:
    """Upsert, query, delete and count chunk vectors in Supabase pgvector."""

    def __init__(
        self,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = VECTOR_TABLE,
        batch_size: int = UPSERT_BATCH_SIZE
    ):
        """
        Initialize the vector store with Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table storing chunk vectors
            batch_size: Maximum records per upsert / delete request

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.table_name = table_name
        self.batch_size = batch_size

        # The supabase client is synchronous; every call runs in a worker thread
        self.client: Client = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized VectorStore with table: {table_name}")

    def _store_error(self, operation: str, e: Exception) -> StoreError:
        error_msg = f"Failed to {operation} in vector store: {str(e)}"
        logger.error(error_msg, extra={"operation": operation, "table": self.table_name})
        return StoreError(ErrorDetail(
            code="STORE_ERROR",
            message=error_msg,
            details={"operation": operation, "table": self.table_name}
        ))

    def _batches(self, items: List[Any]):
        for i in range(0, len(items), self.batch_size):
            yield items[i:i + self.batch_size]

    async def upsert(self, records: List[Dict[str, Any]]) -> int:
        """
        Upsert {id, values, metadata} records, idempotent by id.

        Batches are issued sequentially. A failure part-way leaves earlier
        batches committed.

        Args:
            records: Vector records to store

        Returns:
            Number of records upserted

        Raises:
            StoreError: If a database request fails
        """
        if not records:
            return 0

        rows = [
            {"id": record["id"], "embedding": record["values"], "metadata": record.get("metadata", {})}
            for record in records
        ]

        upserted = 0
        for batch_num, batch in enumerate(self._batches(rows), start=1):
            try:
                await asyncio.to_thread(
                    lambda b=batch: self.client.table(self.table_name).upsert(b).execute()
                )
            except Exception as e:
                raise self._store_error(f"upsert batch {batch_num}", e)
            upserted += len(batch)
            logger.debug(f"Upserted batch {batch_num} ({len(batch)} records)")

        logger.info(f"Upserted {upserted} records into {self.table_name}")
        return upserted

    async def query(
        self,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
        include_values: bool = False
    ) -> List[StoreMatch]:
        """
        Find the top_k most similar vectors by cosine similarity.

        Args:
            vector: Query embedding
            top_k: Number of matches to return
            filter: Optional metadata containment filter
            include_values: Also return stored vectors

        Returns:
            Matches ordered by descending similarity

        Raises:
            ValueError: If vector is empty or top_k is invalid
            StoreError: If the database request fails
        """
        if not vector:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        params = {
            "query_embedding": vector,
            "match_count": top_k,
            "filter": filter or {},
            "include_embedding": include_values,
        }

        try:
            response = await asyncio.to_thread(
                lambda: self.client.rpc("match_chunks", params).execute()
            )
        except Exception as e:
            raise self._store_error("query", e)

        matches = []
        for row in response.data or []:
            values = row.get("embedding") if include_values else None
            if isinstance(values, str):
                # pgvector values come back as "[0.1,0.2,...]"
                values = json.loads(values)
            matches.append(StoreMatch(
                id=row["id"],
                score=float(row.get("similarity") or 0.0),
                metadata=row.get("metadata") or {},
                values=values
            ))

        logger.debug(f"Found {len(matches)} matches for query")
        return matches

    async def find_ids(self, filter: Dict[str, Any]) -> List[str]:
        """Return ids of all records whose metadata contains filter."""
        try:
            response = await asyncio.to_thread(
                lambda: self.client.table(self.table_name).select("id").contains("metadata", filter).execute()
            )
        except Exception as e:
            raise self._store_error("find ids", e)
        return [row["id"] for row in response.data or []]

    async def delete_by_ids(self, ids: List[str]) -> int:
        """Delete records by id, in batches. Returns the number of ids submitted."""
        if not ids:
            return 0

        for batch in self._batches(list(ids)):
            try:
                await asyncio.to_thread(
                    lambda b=batch: self.client.table(self.table_name).delete().in_("id", b).execute()
                )
            except Exception as e:
                raise self._store_error("delete", e)

        logger.info(f"Deleted {len(ids)} records from {self.table_name}")
        return len(ids)

    async def describe_stats(self) -> StoreStats:
        """
        Get aggregate statistics for the store.

        Raises:
            StoreError: If the database request fails
        """
        try:
            response = await asyncio.to_thread(
                lambda: self.client.table(self.table_name).select("id", count="exact").limit(1).execute()
            )
        except Exception as e:
            raise self._store_error("count records", e)
        return StoreStats(vector_count=response.count if response.count is not None else 0)

    async def clear(self) -> int:
        """
        Clear all records from the vector store.

        Useful for testing or reindexing.

        Returns:
            Number of records stored before clearing
        """
        count_before = (await self.describe_stats()).vector_count
        try:
            await asyncio.to_thread(
                lambda: self.client.table(self.table_name).delete().neq("id", "").execute()
            )
        except Exception as e:
            raise self._store_error("clear", e)
        logger.info(f"Cleared {count_before} records from vector store")
        return count_before
