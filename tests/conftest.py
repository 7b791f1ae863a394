"""Shared fixtures: in-memory store, graph DB and a small concept chain."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path
root_path = Path(__file__).parent.parent
if str(root_path) not in sys.path:
    sys.path.insert(0, str(root_path))

from core.config import EngineConfig  # noqa: E402
from core.graph_db import EducationGraphDB  # noqa: E402
from core.mastery_store import MasteryStore  # noqa: E402
from redis_store import MemoryStore  # noqa: E402

CHAIN = [
    ("basics", "Basics", 2),
    ("intermediate", "Intermediate", 4),
    ("advanced", "Advanced", 6),
    ("expert", "Expert", 8),
]


@pytest.fixture
def log_messages():
    """Collect loguru messages at WARNING and above."""
    from loguru import logger

    messages = []
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def config():
    return EngineConfig()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def db(store, config):
    return EducationGraphDB(store, config)


@pytest.fixture
def mastery(store, config):
    return MasteryStore(store, config)


@pytest.fixture
def chain_db(db):
    """basics -> intermediate -> advanced -> expert, all required edges."""
    for concept_id, name, difficulty in CHAIN:
        db.add_concept({
            "concept_id": concept_id,
            "name": name,
            "domain": "math",
            "difficulty": {"absolute": difficulty},
        })
    for (a, _, _), (b, _, _) in zip(CHAIN, CHAIN[1:]):
        db.add_edge(a, b, strength="required")
    return db


@pytest.fixture
def learner(db):
    return db.set_learner_profile("learner-1", name="Test Learner")
