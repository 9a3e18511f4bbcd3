"""
Review aggregation and pagination engine.

Every read is pushed down to SQL. The two reads an operation needs (page slice
and total count, or summary row and rating histogram) are independent, so they
fan out onto a small thread pool, each in its own session, and are joined
before the result is assembled.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_EXCEPTION
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Callable

from sqlalchemy import func, desc, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from review_monitor.config import REVIEW_CONFIG
from review_monitor.database import Review, SessionLocal, MAX_INTEGER, is_valid_id, review_to_dict
from review_monitor.errors import (
    InvalidArgument, RetrievalFailure, DataIntegrityError, ConstraintViolation
)

ITEMS_PER_PAGE = REVIEW_CONFIG['items_per_page']
LOW_RATING_THRESHOLD = REVIEW_CONFIG['low_rating_threshold']
RATING_VALUES = tuple(range(REVIEW_CONFIG['min_rating'], REVIEW_CONFIG['max_rating'] + 1))

# the offset of the last page must still fit a 64-bit INTEGER
MAX_PAGE = (MAX_INTEGER // ITEMS_PER_PAGE) + 1


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_business_id(business_id) -> None:
    if not is_valid_id(business_id):
        raise InvalidArgument("business ID must be a positive integer")


def validate_page(page) -> None:
    if not _is_int(page) or not 0 < page <= MAX_PAGE:
        raise InvalidArgument("page must be a positive integer")


def calculate_total_pages(total_count: int) -> int:
    return math.ceil(total_count / ITEMS_PER_PAGE)


def _as_count(value, field: str) -> int:
    if isinstance(value, Decimal) and value == value.to_integral_value():
        value = int(value)
    if not _is_int(value) or value < 0:
        raise DataIntegrityError(f"expected a non-negative integer for {field}, got {value!r}")
    return value


def _as_rating(value) -> int:
    if not _is_int(value) or value not in RATING_VALUES:
        raise DataIntegrityError(f"unexpected rating value {value!r} in rating distribution")
    return value


def _as_average(value, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise DataIntegrityError(f"expected a numeric {field}, got {value!r}")
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise DataIntegrityError(f"expected a finite {field}, got {value!r}")
    return value


def build_rating_distribution(grouped_rows) -> List[Dict[str, int]]:
    """Merge sparse (rating, count) rows into a dense 1..5 histogram."""
    counts = {}
    for row in grouped_rows:
        if len(row) != 2:
            raise DataIntegrityError(f"expected (rating, count) row, got {row!r}")
        rating, count = row
        rating = _as_rating(rating)
        counts[rating] = _as_count(count, f"count of rating {rating}")
    return [{'rating': rating, 'count': counts.get(rating, 0)} for rating in RATING_VALUES]


def assemble_review_stats(summary, grouped_rows) -> Dict[str, Any]:
    """
    Combine the ungrouped aggregate row with the grouped histogram rows.

    ``summary`` is ``(average, total, low_count, high_count)``. SUM over no rows
    is NULL, so the polarity counts and the average may only be None when the
    total is zero.
    """
    if len(summary) != 4:
        raise DataIntegrityError(f"expected (average, total, low, high) row, got {summary!r}")
    average, total, low, high = summary
    total = _as_count(total, "total reviews")

    if total == 0:
        average_rating = 0.0
        low_count = 0 if low is None else _as_count(low, "low ratings count")
        high_count = 0 if high is None else _as_count(high, "high ratings count")
    else:
        average_rating = round(_as_average(average, "average rating"), 1)
        low_count = _as_count(low, "low ratings count")
        high_count = _as_count(high, "high ratings count")

    if low_count + high_count != total:
        raise DataIntegrityError(
            f"low ({low_count}) and high ({high_count}) ratings do not add up to total ({total})"
        )

    return {
        'average_rating': average_rating,
        'total_reviews': total,
        'low_ratings_count': low_count,
        'high_ratings_count': high_count,
        'rating_distribution': build_rating_distribution(grouped_rows),
    }


class ReviewService:
    """
    Read and ingest reviews for a business.

    Usage:
        service = ReviewService(session_factory=sessionmaker(bind=engine))
        page = service.get_reviews_for_business(1, page=2)
        stats = service.get_review_stats(1)
    """

    def __init__(self, session_factory: Optional[Callable] = None,
                 logger: Optional[logging.Logger] = None):
        self.session_factory = session_factory or SessionLocal
        self.logger = logger or logging.getLogger(__name__)

    def _run_read(self, read: Callable):
        session = self.session_factory()
        try:
            return read(session)
        finally:
            session.close()

    def _fan_out(self, *reads: Callable) -> list:
        """Run independent reads concurrently, return results in order, raise the first failure."""
        executor = ThreadPoolExecutor(max_workers=len(reads), thread_name_prefix='review-read')
        try:
            futures = [executor.submit(self._run_read, read) for read in reads]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                error = future.exception()
                if error is not None:
                    for other in pending:
                        other.cancel()
                    raise error
            return [future.result() for future in futures]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def get_reviews_for_business(self, business_id: int, page: int = 1) -> Dict[str, Any]:
        validate_business_id(business_id)
        validate_page(page)

        offset = (page - 1) * ITEMS_PER_PAGE

        def read_page(session):
            rows = session.query(Review).filter(
                Review.business_id == business_id
            ).order_by(
                desc(Review.published_at), desc(Review.id)
            ).offset(offset).limit(ITEMS_PER_PAGE).all()
            return [review_to_dict(r) for r in rows]

        def read_count(session):
            return session.query(func.count(Review.id)).filter(
                Review.business_id == business_id
            ).scalar()

        try:
            reviews, total_count = self._fan_out(read_page, read_count)
            total_count = _as_count(total_count, "review count")
        except (SQLAlchemyError, DataIntegrityError) as e:
            self.logger.error(
                f"[REVIEWS] get_reviews_for_business failed for business {business_id} page {page}: {e}"
            )
            raise RetrievalFailure(f"Failed to retrieve reviews: {e}") from e

        total_pages = calculate_total_pages(total_count)
        self.logger.debug(
            f"[REVIEWS] Business {business_id} page {page}/{total_pages}: {len(reviews)} reviews"
        )
        return {
            'reviews': reviews,
            'total_pages': total_pages,
            'current_page': page,
        }

    def get_review_stats(self, business_id: int) -> Dict[str, Any]:
        validate_business_id(business_id)

        def read_summary(session):
            row = session.query(
                func.avg(Review.rating),
                func.count(Review.id),
                func.sum(case((Review.rating <= LOW_RATING_THRESHOLD, 1), else_=0)),
                func.sum(case((Review.rating > LOW_RATING_THRESHOLD, 1), else_=0))
            ).filter(Review.business_id == business_id).one()
            return tuple(row)

        def read_distribution(session):
            rows = session.query(
                Review.rating,
                func.count(Review.id)
            ).filter(
                Review.business_id == business_id
            ).group_by(Review.rating).all()
            return [tuple(r) for r in rows]

        try:
            summary, grouped_rows = self._fan_out(read_summary, read_distribution)
        except SQLAlchemyError as e:
            self.logger.error(f"[STATS] get_review_stats failed for business {business_id}: {e}")
            raise RetrievalFailure(f"Failed to retrieve review statistics: {e}") from e

        try:
            stats = assemble_review_stats(summary, grouped_rows)
        except DataIntegrityError as e:
            self.logger.error(f"[STATS] Inconsistent statistics for business {business_id}: {e}")
            raise

        self.logger.debug(
            f"[STATS] Business {business_id}: {stats['total_reviews']} reviews, "
            f"average {stats['average_rating']}"
        )
        return stats

    def get_average_rating_for_business(self, business_id: int) -> Dict[str, Any]:
        """Legacy summary: ``avg_rating`` is None (not 0) when there are no reviews."""
        validate_business_id(business_id)

        def read_average(session):
            row = session.query(
                func.avg(Review.rating),
                func.count(Review.id)
            ).filter(Review.business_id == business_id).one()
            return tuple(row)

        try:
            avg_rating, total_reviews = self._run_read(read_average)
        except SQLAlchemyError as e:
            self.logger.error(
                f"[STATS] get_average_rating_for_business failed for business {business_id}: {e}"
            )
            raise RetrievalFailure(f"Failed to retrieve average rating: {e}") from e

        try:
            return {
                'avg_rating': None if avg_rating is None else _as_average(avg_rating, "average rating"),
                'total_reviews': _as_count(total_reviews, "total reviews"),
            }
        except DataIntegrityError as e:
            self.logger.error(f"[STATS] Inconsistent average rating for business {business_id}: {e}")
            raise

    def add_review(self, business_id: int, content: str, rating: int, published_at: datetime,
                   reviewer_name: Optional[str] = None, link: Optional[str] = None) -> Dict[str, Any]:
        validate_business_id(business_id)
        if not isinstance(content, str) or not content.strip():
            raise InvalidArgument("review content must be a non-empty string")
        if not _is_int(rating) or rating not in RATING_VALUES:
            raise InvalidArgument(
                f"rating must be an integer between {RATING_VALUES[0]} and {RATING_VALUES[-1]}"
            )
        if not isinstance(published_at, datetime):
            raise InvalidArgument("published_at must be a datetime")

        session = self.session_factory()
        try:
            obj = Review(
                business_id=business_id,
                reviewer_name=reviewer_name,
                content=content.strip(),
                rating=rating,
                published_at=published_at,
                created_at=datetime.now(),
                link=link
            )
            session.add(obj)
            session.commit()
            result = review_to_dict(obj)
        except IntegrityError as e:
            session.rollback()
            self.logger.warning(f"[REVIEWS] Review rejected for business {business_id}: {e.orig}")
            raise ConstraintViolation(f"Failed to add review: {e.orig}") from e
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"[REVIEWS] add_review failed for business {business_id}: {e}")
            raise RetrievalFailure(f"Failed to add review: {e}") from e
        finally:
            session.close()

        self.logger.info(f"[REVIEWS] Added review {result['id']} ({rating} stars) to business {business_id}")
        return result


# Global instance - lazy loaded so importing the module never touches the database
review_service = None


def get_review_service() -> ReviewService:
    global review_service
    if review_service is None:
        review_service = ReviewService()
    return review_service


def get_reviews_for_business(business_id: int, page: int = 1) -> Dict[str, Any]:
    return get_review_service().get_reviews_for_business(business_id, page)


def get_review_stats(business_id: int) -> Dict[str, Any]:
    return get_review_service().get_review_stats(business_id)


def get_average_rating_for_business(business_id: int) -> Dict[str, Any]:
    return get_review_service().get_average_rating_for_business(business_id)


def add_review(business_id: int, content: str, rating: int, published_at: datetime,
               reviewer_name: Optional[str] = None, link: Optional[str] = None) -> Dict[str, Any]:
    return get_review_service().add_review(
        business_id, content, rating, published_at, reviewer_name=reviewer_name, link=link
    )
