"""
Pytest fixtures for testing
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.application.equb import CreateEqubUseCase
from app.infrastructure.db.session import Base
from app.infrastructure.db.models import User, TelegramSettings


class FakeMessenger:
    """In-memory MessagingBridge: records what would have gone to Telegram."""

    def __init__(self, fail: bool = False, explode: bool = False):
        self.fail = fail
        self.explode = explode
        self.sent = []
        self.deleted = []
        self.answered = []
        self._next_id = 1000

    def send_message(self, chat_id, text, inline_action=None):
        if self.explode:
            raise RuntimeError("transport down")
        if self.fail:
            return None
        self._next_id += 1
        self.sent.append({"chat_id": chat_id, "text": text, "inline_action": inline_action})
        return str(self._next_id)

    def delete_message(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))
        return True

    def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append((callback_query_id, text))
        return True


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs sync routes in a pool)"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def make_user(db_session):
    def _make(user_id: int = 1, name: str = "Abebe") -> User:
        user = db_session.query(User).filter_by(id=user_id).first()
        if not user:
            user = User(id=user_id, email=f"user{user_id}@example.com", name=name)
            db_session.add(user)
            db_session.commit()
        return user
    return _make


@pytest.fixture
def link_telegram(db_session):
    def _link(user_id: int = 1, chat_id: str = "555000") -> TelegramSettings:
        tg = TelegramSettings(user_id=user_id, chat_id=chat_id, connected=True)
        db_session.add(tg)
        db_session.commit()
        return tg
    return _link


@pytest.fixture
def make_equb(db_session, make_user):
    def _make(
        owner_id: int = 1,
        name: str = "Family Equb",
        contribution_amount: Decimal = Decimal("500"),
        frequency: str = "WEEKLY",
        start_date: date = date(2026, 1, 1),
        total_cycles: int = 4,
        payout_cycle: int = 2,
    ):
        make_user(owner_id)
        return CreateEqubUseCase(db_session).execute(
            owner_id=owner_id,
            name=name,
            contribution_amount=contribution_amount,
            frequency=frequency,
            start_date=start_date,
            total_cycles=total_cycles,
            payout_cycle=payout_cycle,
        )
    return _make
