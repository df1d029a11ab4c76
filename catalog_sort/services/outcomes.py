"""Outcome audit trail: ProductOutcome -> product_sort_outcomes rows.

Persistence is best-effort. The run log stays the primary record; a
database problem is logged by the caller and never stops a run.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sort.models import ProductSortOutcome
from catalog_sort.services.reconciliation import ProductOutcome, WriteStage
from catalog_sort.stores.postgres import get_session, is_db_ready

logger = logging.getLogger("catalog_sort")


def outcome_to_row(run_id: str, outcome: ProductOutcome) -> ProductSortOutcome:
    return ProductSortOutcome(
        run_id=run_id,
        product_id=outcome.product_id,
        product_title=outcome.product_title,
        final_state=outcome.state.value,
        abort_reason=outcome.abort_reason.value if outcome.abort_reason else None,
        options_status=outcome.stages[WriteStage.OPTIONS].value,
        variants_status=outcome.stages[WriteStage.VARIANTS].value,
        images_status=outcome.stages[WriteStage.IMAGES].value,
        dry_run=outcome.dry_run,
        detail_json=json.dumps(outcome.to_detail(), ensure_ascii=False),
    )


async def save_outcome(session: AsyncSession, run_id: str, outcome: ProductOutcome) -> ProductSortOutcome:
    row = outcome_to_row(run_id, outcome)
    session.add(row)
    await session.flush()
    return row


def make_outcome_recorder(run_id: str) -> Callable[[ProductOutcome], Awaitable[None]] | None:
    """Return an on_outcome callback for run_sort, or None if the DB is not initialized."""
    if not is_db_ready():
        logger.info("Database not initialized; outcomes are recorded in the run log only")
        return None

    async def record(outcome: ProductOutcome) -> None:
        async with get_session() as session:
            await save_outcome(session, run_id, outcome)

    return record


async def list_recent_outcomes(
    session: AsyncSession,
    *,
    limit: int = 50,
    run_id: str | None = None,
) -> list[dict[str, Any]]:
    query = select(ProductSortOutcome).order_by(ProductSortOutcome.id.desc()).limit(limit)
    if run_id:
        query = query.where(ProductSortOutcome.run_id == run_id)
    result = await session.execute(query)
    rows = result.scalars().all()
    return [
        {
            "run_id": r.run_id,
            "product_id": r.product_id,
            "product_title": r.product_title,
            "final_state": r.final_state,
            "abort_reason": r.abort_reason,
            "stages": {
                "options": r.options_status,
                "variants": r.variants_status,
                "images": r.images_status,
            },
            "dry_run": r.dry_run,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]
