from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any
import logging

from sqlalchemy import (
    create_engine, event, Column, Integer, String, Text, DateTime, ForeignKey,
    CheckConstraint, Index, func, desc
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, scoped_session

from review_monitor.config import DATABASE_CONFIG
from review_monitor.errors import InvalidArgument, RetrievalFailure

logger = logging.getLogger(__name__)

Base = declarative_base()

# largest value a 64-bit INTEGER column (SQLite, PostgreSQL BIGINT) can bind
MAX_INTEGER = 2 ** 63 - 1


def is_valid_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_INTEGER


def create_db_engine(url: str, echo: bool = False):
    """Create an engine; SQLite connections get foreign keys and cross-thread use."""
    connect_args = {}
    if url.startswith('sqlite'):
        # reads fan out onto worker threads
        connect_args['check_same_thread'] = False
    engine = create_engine(url, echo=echo, connect_args=connect_args)
    if url.startswith('sqlite'):
        @event.listens_for(engine, 'connect')
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()
    return engine


engine = create_db_engine(DATABASE_CONFIG['url'], echo=DATABASE_CONFIG.get('echo', False))
SessionLocal = scoped_session(sessionmaker(bind=engine))


class Platform(Base):
    __tablename__ = 'platforms'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    base_url = Column(String(500))
    logo_url = Column(String(500))


class Team(Base):
    __tablename__ = 'teams'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())


class Business(Base):
    __tablename__ = 'businesses'
    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=False, index=True)
    platform_id = Column(Integer, ForeignKey('platforms.id'), nullable=False)
    name = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False)  # platform-specific slug or full URL
    last_checked_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now())

    platform = relationship('Platform')
    reviews = relationship('Review', back_populates='business')


class Review(Base):
    __tablename__ = 'reviews'
    id = Column(Integer, primary_key=True, autoincrement=True)
    business_id = Column(Integer, ForeignKey('businesses.id'), nullable=False)
    reviewer_name = Column(String(255))
    content = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False)
    published_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())
    link = Column(String(500))

    business = relationship('Business', back_populates='reviews')

    __table_args__ = (
        CheckConstraint('rating >= 1 AND rating <= 5', name='ck_reviews_rating_range'),
        Index('idx_reviews_business_published', 'business_id', 'published_at'),
        Index('idx_reviews_business_rating', 'business_id', 'rating'),
    )

    @property
    def display_name(self) -> str:
        return self.reviewer_name or 'Anonymous'


# Session/context management
@contextmanager
def get_db_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind=None):
    """Create all tables (safe to call multiple times)."""
    Base.metadata.create_all(bind=bind or engine)


def review_to_dict(review: Review) -> Dict[str, Any]:
    return {
        'id': review.id,
        'business_id': review.business_id,
        'reviewer_name': review.reviewer_name,
        'display_name': review.display_name,
        'content': review.content,
        'rating': review.rating,
        'published_at': review.published_at,
        'created_at': review.created_at,
        'link': review.link,
    }


def get_platforms(db) -> List[Dict[str, Any]]:
    objs = db.query(Platform).order_by(Platform.name).all()
    return [
        {'id': o.id, 'name': o.name, 'base_url': o.base_url, 'logo_url': o.logo_url}
        for o in objs
    ]


def create_team(db, name: str) -> Dict[str, Any]:
    obj = Team(name=name)
    db.add(obj)
    db.commit()
    return {'id': obj.id, 'name': obj.name, 'created_at': obj.created_at}


def create_business(db, name: str, url: str, platform_id: int, team_id: int) -> Dict[str, Any]:
    now = datetime.now()
    obj = Business(
        name=name,
        url=url,
        platform_id=platform_id,
        team_id=team_id,
        created_at=now,
        updated_at=now
    )
    db.add(obj)
    db.commit()
    logger.info(f"[BUSINESS] Created business {obj.id} '{name}' for team {team_id}")
    return {
        'id': obj.id,
        'name': obj.name,
        'url': obj.url,
        'platform_id': obj.platform_id,
        'team_id': obj.team_id,
        'last_checked_at': obj.last_checked_at,
    }


def get_businesses_for_team(db, team_id: int) -> List[Dict[str, Any]]:
    if not is_valid_id(team_id):
        raise InvalidArgument("team ID must be a positive integer")

    try:
        rows = db.query(
            Business.id,
            Business.name,
            Business.url,
            Business.last_checked_at,
            Platform.name.label('platform_name'),
            Platform.logo_url.label('platform_logo_url')
        ).outerjoin(
            Platform, Business.platform_id == Platform.id
        ).filter(
            Business.team_id == team_id
        ).order_by(Business.created_at, Business.id).all()
    except SQLAlchemyError as e:
        logger.error(f"[BUSINESS] get_businesses_for_team failed for team {team_id}: {e}")
        raise RetrievalFailure(f"Failed to retrieve businesses: {e}") from e

    return [
        {
            'id': row.id,
            'name': row.name,
            'url': row.url,
            'last_checked_at': row.last_checked_at,
            'platform_name': row.platform_name,
            'platform_logo_url': row.platform_logo_url,
        }
        for row in rows
    ]


def get_business_with_reviews(db, business_id: int) -> Optional[Dict[str, Any]]:
    obj = db.query(Business).filter(Business.id == business_id).first()
    if not obj:
        return None
    reviews = db.query(Review).filter(
        Review.business_id == business_id
    ).order_by(desc(Review.published_at), desc(Review.id)).all()
    platform = obj.platform
    return {
        'id': obj.id,
        'name': obj.name,
        'url': obj.url,
        'team_id': obj.team_id,
        'last_checked_at': obj.last_checked_at,
        'platform': {
            'id': platform.id,
            'name': platform.name,
            'base_url': platform.base_url,
            'logo_url': platform.logo_url,
        } if platform else None,
        'reviews': [review_to_dict(r) for r in reviews],
    }


def update_business_last_checked(db, business_id: int) -> bool:
    obj = db.query(Business).filter(Business.id == business_id).first()
    if not obj:
        return False
    now = datetime.now()
    obj.last_checked_at = now
    obj.updated_at = now
    db.commit()
    return True
