"""ProductSortOutcome model.

One row per product per run: the audit trail of what the sorter decided
and which of the three reorder writes went through.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sort.stores.postgres import Base


def generate_run_id() -> str:
    """Generate unique run ID."""
    return str(uuid4())


class ProductSortOutcome(Base):
    __tablename__ = "product_sort_outcomes"

    id: Mapped[int] = mapped_column(primary_key=True)

    run_id: Mapped[str] = mapped_column(String(100), index=True)

    # Shopify GID, e.g. "gid://shopify/Product/123"
    product_id: Mapped[str] = mapped_column(String(200), index=True)
    product_title: Mapped[str] = mapped_column(Text)

    # "done" / "aborted" (see ProductState)
    final_state: Mapped[str] = mapped_column(String(50), index=True)
    abort_reason: Mapped[str | None] = mapped_column(String(50))

    # Per-stage status: ok / user_errors / failed / skipped / dry_run / not_attempted
    options_status: Mapped[str] = mapped_column(String(30))
    variants_status: Mapped[str] = mapped_column(String(30))
    images_status: Mapped[str] = mapped_column(String(30))

    dry_run: Mapped[bool] = mapped_column(Boolean, default=False)

    # Orders, state history and error payloads (JSON)
    detail_json: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
