"""
Tests for rating statistics: the SQL aggregation, the histogram assembly and
the legacy average.
"""

import logging
from decimal import Decimal

import pytest

from review_monitor.errors import ErrorKind, DataIntegrityError, RetrievalFailure
from review_monitor.review_service import (
    ReviewService, assemble_review_stats, build_rating_distribution
)


def distribution(*counts):
    return [{'rating': rating, 'count': count} for rating, count in zip(range(1, 6), counts)]


def test_stats_for_mixed_ratings(service, business_id, add_reviews):
    add_reviews(business_id, [5, 3, 5, 1])

    stats = service.get_review_stats(business_id)

    assert stats == {
        'average_rating': 3.5,
        'total_reviews': 4,
        'low_ratings_count': 2,
        'high_ratings_count': 2,
        'rating_distribution': distribution(1, 0, 1, 0, 2),
    }


def test_stats_without_reviews(service, business_id):
    stats = service.get_review_stats(business_id)

    assert stats['average_rating'] == 0
    assert stats['average_rating'] is not None
    assert stats['total_reviews'] == 0
    assert stats['low_ratings_count'] == 0
    assert stats['high_ratings_count'] == 0
    assert stats['rating_distribution'] == distribution(0, 0, 0, 0, 0)


def test_legacy_average_without_reviews(service, business_id):
    result = service.get_average_rating_for_business(business_id)

    assert result == {'avg_rating': None, 'total_reviews': 0}


def test_legacy_average_is_not_rounded(service, business_id, add_reviews):
    add_reviews(business_id, [4, 4, 5])

    result = service.get_average_rating_for_business(business_id)

    assert result['total_reviews'] == 3
    assert result['avg_rating'] == pytest.approx(13 / 3)
    assert service.get_review_stats(business_id)['average_rating'] == 4.3


def test_average_is_rounded_to_one_decimal(service, business_id, add_reviews):
    add_reviews(business_id, [5, 4, 4])

    assert service.get_review_stats(business_id)['average_rating'] == 4.3


def test_stats_invariants(service, business_id, add_reviews):
    add_reviews(business_id, [1, 2, 2, 3, 4, 4, 4, 5, 5, 5, 5])

    stats = service.get_review_stats(business_id)

    assert [b['rating'] for b in stats['rating_distribution']] == [1, 2, 3, 4, 5]
    assert sum(b['count'] for b in stats['rating_distribution']) == stats['total_reviews']
    assert stats['low_ratings_count'] + stats['high_ratings_count'] == stats['total_reviews']
    assert stats['low_ratings_count'] == 4


def test_stats_are_idempotent(service, business_id, add_reviews):
    add_reviews(business_id, [2, 5, 5, 4])

    assert service.get_review_stats(business_id) == service.get_review_stats(business_id)


def test_stats_ignore_other_businesses(service, db, platform, team, business_id, add_reviews):
    from review_monitor.database import create_business
    other_id = create_business(db, "Bright Dental", "bright-dental-clinic", platform.id, team['id'])['id']
    add_reviews(business_id, [5])
    add_reviews(other_id, [1, 1])

    stats = service.get_review_stats(business_id)

    assert stats['total_reviews'] == 1
    assert stats['rating_distribution'] == distribution(0, 0, 0, 0, 1)


def test_stats_storage_error_is_wrapped(failing_service):
    with pytest.raises(RetrievalFailure, match="Database error") as exc:
        failing_service.get_review_stats(3)

    assert exc.value.kind is ErrorKind.RETRIEVAL_FAILURE


def test_legacy_average_storage_error_is_wrapped(failing_service):
    with pytest.raises(RetrievalFailure, match="Failed to retrieve average rating"):
        failing_service.get_average_rating_for_business(3)


class FakeQuery:
    def __init__(self, row=None, rows=None):
        self.row = row
        self.rows = rows

    def filter(self, *args):
        return self

    def group_by(self, *args):
        return self

    def one(self):
        return self.row

    def all(self):
        return self.rows


class FakeStatsSession:
    """Returns canned aggregate rows: four columns for the summary, two for the histogram."""

    def __init__(self, summary, grouped_rows):
        self.summary = summary
        self.grouped_rows = grouped_rows

    def query(self, *columns):
        if len(columns) == 4:
            return FakeQuery(row=self.summary)
        return FakeQuery(rows=self.grouped_rows)

    def close(self):
        pass


def test_non_numeric_count_is_fatal():
    service = ReviewService(
        session_factory=lambda: FakeStatsSession((4.0, 2, 0, 2), [(4, "two")])
    )

    with pytest.raises(DataIntegrityError) as exc:
        service.get_review_stats(1)

    assert exc.value.kind is ErrorKind.DATA_INTEGRITY


def test_build_rating_distribution_zero_fills():
    assert build_rating_distribution([(5, 2), (1, 1), (3, 1)]) == distribution(1, 0, 1, 0, 2)
    assert build_rating_distribution([]) == distribution(0, 0, 0, 0, 0)


@pytest.mark.parametrize("rows", [
    [(6, 1)],
    [(0, 1)],
    [("5", 1)],
    [(5, -1)],
    [(5, 1.5)],
    [(5, None)],
    [(5,)],
])
def test_build_rating_distribution_rejects_bad_rows(rows):
    with pytest.raises(DataIntegrityError):
        build_rating_distribution(rows)


def test_assemble_accepts_decimal_aggregates():
    stats = assemble_review_stats((Decimal("4.25"), 4, Decimal(1), Decimal(3)), [(3, 1), (4, 1), (5, 2)])

    assert stats['average_rating'] == 4.2
    assert stats['low_ratings_count'] == 1
    assert stats['high_ratings_count'] == 3


def test_assemble_empty_sums_are_zero():
    stats = assemble_review_stats((None, 0, None, None), [])

    assert stats['average_rating'] == 0
    assert stats['low_ratings_count'] == 0
    assert stats['high_ratings_count'] == 0


@pytest.mark.parametrize("summary", [
    (None, 2, 1, 1),          # missing average with reviews present
    ("n/a", 2, 1, 1),
    (3.0, "2", 1, 1),
    (3.0, 2, None, 2),
    (3.0, 3, 1, 1),           # polarity split does not add up
    (3.0, 2, 1),
])
def test_assemble_rejects_inconsistent_summary(summary):
    with pytest.raises(DataIntegrityError):
        assemble_review_stats(summary, [])


def test_assemble_is_idempotent():
    summary = (3.5, 4, 2, 2)
    rows = [(5, 2), (3, 1), (1, 1)]

    assert assemble_review_stats(summary, rows) == assemble_review_stats(summary, rows)


@pytest.mark.parametrize("hold_summary", [False, True])
def test_failed_histogram_discards_the_summary(flaky_factory, business_id, add_reviews,
                                               hold_summary):
    add_reviews(business_id, [5, 3, 5, 1])
    factory = flaky_factory(
        fails=lambda columns: len(columns) == 2,
        holds=(lambda columns: len(columns) == 4) if hold_summary else None
    )
    service = ReviewService(session_factory=factory)

    stats = None
    match = "Failed to retrieve review statistics: .*Lost connection"
    with pytest.raises(RetrievalFailure, match=match):
        stats = service.get_review_stats(business_id)

    assert stats is None
    assert factory.released.is_set() is False


class FakeAverageSession:
    def __init__(self, row):
        self.row = row

    def query(self, *columns):
        return FakeQuery(row=self.row)

    def close(self):
        pass


@pytest.mark.parametrize("row", [("high", 3), (4.5, -1), (float('nan'), 2)])
def test_malformed_legacy_average_is_logged(caplog, row):
    service = ReviewService(
        session_factory=lambda: FakeAverageSession(row),
        logger=logging.getLogger("tests.average")
    )

    with caplog.at_level(logging.ERROR, logger="tests.average"):
        with pytest.raises(DataIntegrityError):
            service.get_average_rating_for_business(9)

    messages = [r.getMessage() for r in caplog.records if r.name == "tests.average"]
    assert len(messages) == 1
    assert "Inconsistent average rating for business 9" in messages[0]
