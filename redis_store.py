"""
Redis Store - key-value persistence for learners, concepts and mastery.

Key Structure:
    learner:{user_id}                        -> JSON (LearnerProfile)
    concept:{concept_id}                     -> JSON (ConceptNode)
    edge:prereq:{from}:{to}                  -> JSON (PrerequisiteEdge)
    edge:related:{edge_id}                   -> JSON (RelatedEdge)
    state:{user_id}:{concept_id}             -> JSON (KnowledgeState)
    index:domain:{domain}:{concept_id}       -> JSON (concept_id)

Two backends share the same small contract (get / put / delete / exists /
scan / batch): RedisStore for deployments, MemoryStore for embedding and
tests.
"""

import json
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import redis
from dotenv import load_dotenv
from loguru import logger

# Load environment variables from .env
load_dotenv()

# ("put", key, value) or ("delete", key)
BatchOp = Tuple[Any, ...]


# ==================== Key Builders ====================

def learner_key(user_id: str) -> str:
    return f"learner:{user_id}"


def concept_key(concept_id: str) -> str:
    return f"concept:{concept_id}"


def prereq_edge_key(from_id: str, to_id: str) -> str:
    return f"edge:prereq:{from_id}:{to_id}"


def related_edge_key(edge_id: str) -> str:
    return f"edge:related:{edge_id}"


def state_key(user_id: str, concept_id: str) -> str:
    return f"state:{user_id}:{concept_id}"


def domain_index_key(domain: str, concept_id: str) -> str:
    return f"index:domain:{domain}:{concept_id}"


class KeyValueStore(ABC):
    """Contract the graph database is written against."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    @abstractmethod
    def scan(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        """Yield (key, value) for every key starting with prefix, in key order."""

    def batch(self, ops: Iterable[BatchOp]) -> None:
        for op in ops:
            self._apply(op)

    def _apply(self, op: BatchOp) -> None:
        kind = op[0]
        if kind == "put":
            self.put(op[1], op[2])
        elif kind == "delete":
            self.delete(op[1])
        else:
            raise ValueError(f"Unknown batch operation: {kind}")

    def close(self) -> None:
        """Release any held connection."""


class MemoryStore(KeyValueStore):
    """Dict-backed store. Values are JSON round-tripped like in Redis."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        return key in self._data

    def scan(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        # Snapshot so callers can delete while iterating
        keys = sorted(k for k in self._data if k.startswith(prefix))
        for key in keys:
            raw = self._data.get(key)
            if raw is not None:
                yield key, json.loads(raw)

    def __len__(self) -> int:
        return len(self._data)


class RedisStore(KeyValueStore):
    def __init__(self, client: Optional[redis.Redis] = None, namespace: str = ""):
        """
        Connect to Redis using environment variables.

        Args:
            client: Pre-built client (tests, shared pools); built from env if None
            namespace: Optional key prefix so several graphs can share a database
        """
        self.client = client or redis.Redis(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", 6379)),
            password=os.getenv("REDIS_PASSWORD", None),
            db=int(os.getenv("REDIS_DB", 0)),
            decode_responses=True  # Return strings instead of bytes
        )
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    # ==================== Single Keys ====================

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        self.client.set(self._key(key), json.dumps(value))

    def delete(self, key: str) -> bool:
        return bool(self.client.delete(self._key(key)))

    def exists(self, key: str) -> bool:
        return bool(self.client.exists(self._key(key)))

    # ==================== Prefix Iteration ====================

    def scan(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        pattern = _escape_glob(self._key(prefix)) + "*"
        keys = sorted(self.client.scan_iter(match=pattern, count=500))
        if not keys:
            return

        strip = len(self.namespace)
        values = self.client.mget(keys)
        for key, raw in zip(keys, values):
            # Deleted between SCAN and MGET
            if raw is None:
                continue
            yield key[strip:], json.loads(raw)

    # ==================== Batches ====================

    def batch(self, ops: Iterable[BatchOp]) -> None:
        """Apply puts and deletes in one MULTI/EXEC pipeline."""
        pipe = self.client.pipeline(transaction=True)
        count = 0
        for op in ops:
            kind = op[0]
            if kind == "put":
                pipe.set(self._key(op[1]), json.dumps(op[2]))
            elif kind == "delete":
                pipe.delete(self._key(op[1]))
            else:
                raise ValueError(f"Unknown batch operation: {kind}")
            count += 1
        if count:
            pipe.execute()
            logger.debug("Redis batch applied: {} ops", count)

    def close(self) -> None:
        self.client.close()


def _escape_glob(text: str) -> str:
    """Escape Redis MATCH metacharacters so IDs are matched literally."""
    out: List[str] = []
    for ch in text:
        if ch in "*?[]\\":
            out.append("\\")
        out.append(ch)
    return "".join(out)
