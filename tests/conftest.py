"""
Shared pytest fixtures.
Every test gets a fresh in-memory SQLite database.
"""

import random

import pytest
from fastapi.testclient import TestClient

from quizdeck.database import Database
from quizdeck.main import app, get_db, get_study_service
from quizdeck.models import Base
from quizdeck.study import StudySessionService

TEST_USER_ID = "user-1"


@pytest.fixture
def test_db():
    """Create a fresh in-memory test database for each test."""
    db = Database("sqlite:///:memory:")

    yield db

    Base.metadata.drop_all(db.engine)
    db.engine.dispose()


@pytest.fixture
def db(test_db):
    """Alias for test_db; some tests use the 'db' fixture name."""
    return test_db


@pytest.fixture
def study_service(test_db):
    """Study service with a seeded shuffle."""
    return StudySessionService(test_db, rng=random.Random(1234))


@pytest.fixture
def auth_headers():
    return {"X-User-Id": TEST_USER_ID}


@pytest.fixture
def client(test_db, study_service):
    """Create a test client with dependency overrides."""
    app.dependency_overrides[get_db] = lambda: test_db
    app.dependency_overrides[get_study_service] = lambda: study_service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def deck_payload(title="Python Basics", questions=None, description="Core language questions"):
    """Build a deck-create request body."""
    if questions is None:
        questions = [
            {
                "question_text": "What keyword defines a function?",
                "answers": [
                    {"answer_text": "def", "is_correct": True},
                    {"answer_text": "func", "is_correct": False},
                    {"answer_text": "lambda", "is_correct": False},
                    {"answer_text": "fn", "is_correct": False},
                ],
            }
        ]
    return {"title": title, "description": description, "questions": questions}


@pytest.fixture
def make_deck_payload():
    return deck_payload
