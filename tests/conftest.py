"""Shared fixtures: an in-memory vector store and small pipeline builders."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from typing import Any, Dict, List, Optional

from services.reranker import cosine_similarity
from services.vector_store import StoreMatch, StoreStats


class FakeVectorStore:
    """In-memory stand-in for VectorStore with the same async interface."""

    def __init__(self, batch_size: int = 100):
        self.batch_size = batch_size
        self.records: Dict[str, Dict[str, Any]] = {}
        self.upsert_batches: List[int] = []

    async def upsert(self, records: List[Dict[str, Any]]) -> int:
        for i in range(0, len(records), self.batch_size):
            batch = records[i:i + self.batch_size]
            self.upsert_batches.append(len(batch))
            for record in batch:
                self.records[record["id"]] = record
        return len(records)

    async def query(
        self,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
        include_values: bool = False
    ) -> List[StoreMatch]:
        scored = [
            StoreMatch(
                id=record["id"],
                score=cosine_similarity(vector, record["values"]),
                metadata=dict(record["metadata"]),
                values=list(record["values"]) if include_values else None
            )
            for record in self.records.values()
            if self._contains(record["metadata"], filter or {})
        ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]

    async def find_ids(self, filter: Dict[str, Any]) -> List[str]:
        return [
            record_id for record_id, record in self.records.items()
            if self._contains(record["metadata"], filter)
        ]

    async def delete_by_ids(self, ids: List[str]) -> int:
        for record_id in ids:
            self.records.pop(record_id, None)
        return len(ids)

    async def describe_stats(self) -> StoreStats:
        return StoreStats(vector_count=len(self.records))

    async def clear(self) -> int:
        count = len(self.records)
        self.records.clear()
        return count

    @staticmethod
    def _contains(metadata: Dict[str, Any], filter: Dict[str, Any]) -> bool:
        return all(metadata.get(key) == value for key, value in filter.items())


@pytest.fixture
def fake_store():
    return FakeVectorStore()
