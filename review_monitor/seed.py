#!/usr/bin/env python3
"""
Seed the database with demo platforms, a team, businesses and reviews.

Safe to run repeatedly: existing rows are reused, reviews are only inserted
when the first demo business has none.
"""

import logging
import sys
from datetime import datetime, timedelta

from review_monitor.database import (
    get_db_session, init_db, Platform, Team, Business, Review
)
from review_monitor.robust_logger import setup_logger

logger = logging.getLogger(__name__)

PLATFORMS = [
    {
        'name': 'Google',
        'base_url': 'https://www.google.com/maps/place/',
        'logo_url': 'https://upload.wikimedia.org/wikipedia/commons/2/2f/Google_2015_logo.svg',
    },
    {
        'name': 'Trustpilot',
        'base_url': 'https://www.trustpilot.com/review/',
        'logo_url': 'https://upload.wikimedia.org/wikipedia/commons/6/62/Trustpilot_logo_2022.svg',
    },
]

TEAM_NAME = 'Test Team'

BUSINESSES = [
    {'name': "Joe's Pizza", 'url': 'joes-pizza-new-york', 'platform': 'Google'},
    {'name': 'Bright Dental', 'url': 'bright-dental-clinic', 'platform': 'Trustpilot'},
]

REVIEWS = [
    {'business': "Joe's Pizza", 'reviewer_name': 'Alice', 'content': 'Great pizza and fast delivery!',
     'rating': 5, 'days_ago': 3},
    {'business': "Joe's Pizza", 'reviewer_name': 'Bob', 'content': 'Tasty but a bit too salty for me.',
     'rating': 3, 'days_ago': 1},
    {'business': 'Bright Dental', 'reviewer_name': 'Clara', 'content': 'Friendly staff and clean office.',
     'rating': 4, 'days_ago': 2},
]


def seed_platforms(db):
    platforms = {}
    for data in PLATFORMS:
        obj = db.query(Platform).filter(Platform.name == data['name']).first()
        if obj:
            logger.info(f"[SEED] Platform '{data['name']}' already exists")
        else:
            obj = Platform(**data)
            db.add(obj)
            db.flush()
            logger.info(f"[SEED] Created platform '{data['name']}'")
        platforms[obj.name] = obj
    return platforms


def seed_team(db):
    team = db.query(Team).filter(Team.name == TEAM_NAME).first()
    if team:
        logger.info(f"[SEED] Team '{TEAM_NAME}' already exists")
        return team
    team = Team(name=TEAM_NAME)
    db.add(team)
    db.flush()
    logger.info(f"[SEED] Created team '{TEAM_NAME}'")
    return team


def seed_businesses(db, team, platforms):
    businesses = {}
    for data in BUSINESSES:
        obj = db.query(Business).filter(
            Business.team_id == team.id,
            Business.name == data['name']
        ).first()
        if obj:
            logger.info(f"[SEED] Business '{data['name']}' already exists")
        else:
            now = datetime.now()
            obj = Business(
                name=data['name'],
                url=data['url'],
                platform_id=platforms[data['platform']].id,
                team_id=team.id,
                created_at=now,
                updated_at=now
            )
            db.add(obj)
            db.flush()
            logger.info(f"[SEED] Created business '{data['name']}'")
        businesses[obj.name] = obj
    return businesses


def seed_reviews(db, businesses):
    first_business = businesses[BUSINESSES[0]['name']]
    existing = db.query(Review).filter(Review.business_id == first_business.id).count()
    if existing:
        logger.info("[SEED] Reviews already exist, skipping review creation")
        return 0

    now = datetime.now()
    for data in REVIEWS:
        db.add(Review(
            business_id=businesses[data['business']].id,
            reviewer_name=data['reviewer_name'],
            content=data['content'],
            rating=data['rating'],
            published_at=now - timedelta(days=data['days_ago']),
            created_at=now
        ))
    db.flush()
    logger.info(f"[SEED] Seeded {len(REVIEWS)} reviews")
    return len(REVIEWS)


def seed_database(db):
    platforms = seed_platforms(db)
    team = seed_team(db)
    businesses = seed_businesses(db, team, platforms)
    reviews_added = seed_reviews(db, businesses)
    db.commit()
    return {
        'platforms': len(platforms),
        'team_id': team.id,
        'business_ids': {name: b.id for name, b in businesses.items()},
        'reviews_added': reviews_added,
    }


def main():
    setup_logger('seed')
    try:
        init_db()
        with get_db_session() as db:
            result = seed_database(db)
        logger.info(f"[SEED] Seed process finished: {result}")
        return 0
    except Exception as e:
        logger.error(f"[SEED] Seed process failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
