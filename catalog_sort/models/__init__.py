"""SQLAlchemy ORM models.

Models represent database tables:
- product_sort_outcomes: per-product audit rows, one per run
"""

from catalog_sort.models.sort_outcome import ProductSortOutcome

__all__ = ["ProductSortOutcome"]
