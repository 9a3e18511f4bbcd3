"""
Shared fixtures: a throwaway SQLite database per test plus helpers to insert
businesses and reviews.
"""

import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from review_monitor.database import (
    create_db_engine, init_db, create_team, create_business, Platform, Review
)
from review_monitor.review_service import ReviewService


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test_reviews.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def platform(db):
    obj = Platform(name="Google", base_url="https://www.google.com/maps/place/")
    db.add(obj)
    db.commit()
    return obj


@pytest.fixture
def team(db):
    return create_team(db, "Test Team")


@pytest.fixture
def business_id(db, platform, team):
    return create_business(db, "Joe's Pizza", "joes-pizza-new-york", platform.id, team['id'])['id']


@pytest.fixture
def add_reviews(db):
    """Insert one review per rating, each published a day after the previous one."""
    def _add(business_id, ratings, start=datetime(2024, 1, 1, 12, 0)):
        objs = []
        for i, rating in enumerate(ratings):
            obj = Review(
                business_id=business_id,
                reviewer_name=f"Reviewer {i}",
                content=f"Review number {i}",
                rating=rating,
                published_at=start + timedelta(days=i),
                created_at=datetime(2024, 6, 1)
            )
            db.add(obj)
            objs.append(obj)
        db.commit()
        return objs
    return _add


@pytest.fixture
def service(session_factory):
    return ReviewService(session_factory=session_factory)


class FailingSession:
    """Session whose every query fails like a dropped connection."""

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT reviews", {}, Exception("Database error"))

    def add(self, obj):
        pass

    def commit(self):
        raise OperationalError("INSERT INTO reviews", {}, Exception("Database error"))

    def rollback(self):
        pass

    def close(self):
        pass


@pytest.fixture
def failing_service():
    return ReviewService(session_factory=FailingSession)


class _FlakySession:
    def __init__(self, session, owner):
        self.session = session
        self.owner = owner
        self.closed = threading.Event()

    def query(self, *columns):
        if self.owner.fails(columns):
            raise OperationalError("SELECT reviews", {}, Exception("Lost connection mid-read"))
        if self.owner.holds(columns):
            self.owner.released.wait(timeout=5)
        return self.session.query(*columns)

    def close(self):
        self.session.close()
        self.closed.set()


class FlakySessionFactory:
    """
    Opens real sessions but fails the queries matched by ``fails`` and holds
    the ones matched by ``holds`` until ``release()`` is called. Both receive
    the selected columns of the query.
    """

    def __init__(self, session_factory, fails, holds=None):
        self.session_factory = session_factory
        self.fails = fails
        self.holds = holds or (lambda columns: False)
        self.released = threading.Event()
        self.sessions = []

    def __call__(self):
        session = _FlakySession(self.session_factory(), self)
        self.sessions.append(session)
        return session

    def release(self):
        self.released.set()
        for session in list(self.sessions):
            session.closed.wait(timeout=5)


@pytest.fixture
def flaky_factory(session_factory):
    factories = []

    def _make(fails, holds=None):
        factory = FlakySessionFactory(session_factory, fails, holds)
        factories.append(factory)
        return factory

    yield _make
    for factory in factories:
        factory.release()
