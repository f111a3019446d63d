"""Pagination utilities for list endpoints."""

from sqlalchemy.orm import Query as SQLAlchemyQuery


# Pagination limits
DEFAULT_PER_PAGE = 20


def page_count(total: int, per_page: int) -> int:
    return (total + per_page - 1) // per_page if per_page > 0 else 0


def paginate_query(query: SQLAlchemyQuery, page: int, per_page: int) -> tuple[list, int]:
    """
    Apply pagination to a SQLAlchemy query.

    Returns:
        (items, total_count)
    """
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, total
