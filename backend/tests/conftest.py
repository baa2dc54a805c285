import os
import tempfile
from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine
from starlette.testclient import TestClient

# Set up test config before any app imports
_tmpdir = tempfile.mkdtemp()

_test_config_content = f"""\
database:
  url: "sqlite:///:memory:"
logging:
  level: "WARNING"
  file: "{_tmpdir}/test.log"
security:
  cors_origins:
    - "http://localhost"
rate_limit:
  review: "10000/minute"
cache:
  settings_ttl_seconds: 300
scheduler:
  new_cards_per_day: 5
  max_reviews_per_day: 10
  request_retention: 0.9
  maximum_interval: 730
  enable_fuzz: false
  enable_short_term: true
"""

from pathlib import Path

_test_config_path = Path(_tmpdir) / "config.yaml"
_test_config_path.write_text(_test_config_content)
os.environ["APP_CONFIG_PATH"] = str(_test_config_path)

from flashdeck.core.config import get_config

get_config.cache_clear()

from flashdeck.api.deps import get_parameters_cache
from flashdeck.core.db import get_session
from flashdeck.main import app
from flashdeck.models.card import Card, State
from flashdeck.models.deck import Deck
from flashdeck.models.review_log import ReviewLog

USER = "user-1"
NOW = datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture(name="engine")
def engine_fixture():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(engine):
    def override():
        with Session(engine) as session:
            yield session

    get_parameters_cache().clear()
    app.dependency_overrides[get_session] = override
    with TestClient(app, headers={"X-User-Id": USER}) as client:
        yield client
    app.dependency_overrides.clear()
    get_parameters_cache().clear()


@pytest.fixture
def make_deck(session):
    def _make(name="Spanish", user_id=USER, daily_scaler=1.0, slug=None):
        deck = Deck(user_id=user_id, name=name, slug=slug or name.lower(), daily_scaler=daily_scaler)
        session.add(deck)
        session.commit()
        session.refresh(deck)
        return deck

    return _make


@pytest.fixture
def make_card(session):
    def _make(deck, state=State.NEW, due=None, created_at=None, user_id=None, **fields):
        card = Card(
            user_id=user_id or deck.user_id,
            deck_id=deck.id,
            front=fields.pop("front", "hola"),
            back=fields.pop("back", "hello"),
            state=state,
            due=due,
            created_at=created_at or NOW - timedelta(days=30),
            **fields,
        )
        if state != State.NEW:
            card.stability = fields.get("stability", 5.0)
            card.difficulty = fields.get("difficulty", 5.0)
            card.reps = fields.get("reps", 3)
            card.last_review = fields.get("last_review", (due or NOW) - timedelta(days=5))
            card.scheduled_days = fields.get("scheduled_days", 5)
        session.add(card)
        session.commit()
        session.refresh(card)
        return card

    return _make


@pytest.fixture
def make_log(session):
    def _make(card, state=State.REVIEW, review=None, user_id=None, rating=3):
        log = ReviewLog(
            card_id=card.id,
            user_id=user_id or card.user_id,
            rating=rating,
            state=state,
            review=review or NOW - timedelta(hours=1),
        )
        session.add(log)
        session.commit()
        return log

    return _make
