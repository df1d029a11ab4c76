"""Product reconciliation: sales ranking -> three catalog reorder writes.

Per product the reconciler walks a fixed state machine:

    LOADED -> OPTIONS_REORDERED -> VARIANTS_REORDERED -> IMAGES_REORDERED -> DONE
       |              |
       +-----> ABORTED (NO_SALES_DATA, NO_CATALOG_DATA, NO_COLOR_AXIS,
                        OPTIONS_WRITE_FAILED, UNEXPECTED_ERROR)

Which write failures abort the product is data (WRITE_FAILURE_POLICY), not
control flow. Option values must be reordered first because variant titles
are interpreted against option value identity; the variant and image writes
are independent improvements attempted best-effort.

Notes:
- Nothing is rolled back. A product stopped or failed mid-sequence keeps
  whatever its last successful write produced.
- Products are processed strictly one after another; the tally is shared
  read-only and every other structure is local to one product.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol

from catalog_sort.schemas.catalog import Product
from catalog_sort.services.images import sequence_images
from catalog_sort.services.ranking import (
    NoColorAxisError,
    OptionOrder,
    plan_option_orders,
    rank_variants,
    variant_positions,
)
from catalog_sort.services.sales_tally import SalesTally
from catalog_sort.services.shopify_client import MutationResult, ShopifyError
from catalog_sort.services.throttle import FixedDelayScheduler, SleepFn
from catalog_sort.settings import Settings

logger = logging.getLogger("catalog_sort")


class ProductState(str, Enum):
    LOADED = "loaded"
    OPTIONS_REORDERED = "options_reordered"
    VARIANTS_REORDERED = "variants_reordered"
    IMAGES_REORDERED = "images_reordered"
    DONE = "done"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    NO_SALES_DATA = "no_sales_data"
    NO_CATALOG_DATA = "no_catalog_data"
    NO_COLOR_AXIS = "no_color_axis"
    OPTIONS_WRITE_FAILED = "options_write_failed"
    UNEXPECTED_ERROR = "unexpected_error"


class WriteStage(str, Enum):
    OPTIONS = "options"
    VARIANTS = "variants"
    IMAGES = "images"


class FailurePolicy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


class StageStatus(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    OK = "ok"
    USER_ERRORS = "user_errors"  # errors reported, product data returned
    FAILED = "failed"  # transport failure, or errors without product data
    SKIPPED = "skipped"  # nothing to write
    DRY_RUN = "dry_run"


WRITE_FAILURE_POLICY: dict[WriteStage, FailurePolicy] = {
    WriteStage.OPTIONS: FailurePolicy.ABORT,
    WriteStage.VARIANTS: FailurePolicy.CONTINUE,
    WriteStage.IMAGES: FailurePolicy.CONTINUE,
}

STAGE_STATE: dict[WriteStage, ProductState] = {
    WriteStage.OPTIONS: ProductState.OPTIONS_REORDERED,
    WriteStage.VARIANTS: ProductState.VARIANTS_REORDERED,
    WriteStage.IMAGES: ProductState.IMAGES_REORDERED,
}

STAGE_ABORT_REASON: dict[WriteStage, AbortReason] = {
    WriteStage.OPTIONS: AbortReason.OPTIONS_WRITE_FAILED,
}


class ReconcileError(RuntimeError):
    """Unexpected failure while reconciling one product.

    Carries the product's outcome, aborted with UNEXPECTED_ERROR and holding
    whatever stages completed before the failure.
    """

    def __init__(self, outcome: ProductOutcome):
        super().__init__(outcome.detail or f"Product {outcome.product_id} failed")
        self.outcome = outcome


class CatalogClient(Protocol):
    async def fetch_products(
        self, search: str, scheduler: FixedDelayScheduler | None = None
    ) -> list[Product]: ...

    async def reorder_options(self, product_id: str, options: Sequence[OptionOrder]) -> MutationResult: ...

    async def reorder_variants(
        self, product_id: str, positions: Sequence[dict[str, Any]]
    ) -> MutationResult: ...

    async def reorder_images(self, product_id: str, image_ids: Sequence[str]) -> MutationResult: ...


@dataclass
class ProductOutcome:
    """Everything decided and attempted for one product."""

    product_id: str
    product_title: str
    dry_run: bool = False
    state: ProductState = ProductState.LOADED
    abort_reason: AbortReason | None = None
    history: list[ProductState] = field(default_factory=lambda: [ProductState.LOADED])
    stages: dict[WriteStage, StageStatus] = field(
        default_factory=lambda: {stage: StageStatus.NOT_ATTEMPTED for stage in WriteStage}
    )
    stage_errors: dict[WriteStage, str] = field(default_factory=dict)
    variant_order: list[str] = field(default_factory=list)
    option_orders: dict[str, list[str]] = field(default_factory=dict)
    image_order: list[str] = field(default_factory=list)
    detail: str | None = None

    @property
    def aborted(self) -> bool:
        return self.state is ProductState.ABORTED

    @property
    def done(self) -> bool:
        return self.state is ProductState.DONE

    @property
    def finished(self) -> bool:
        return self.state in (ProductState.DONE, ProductState.ABORTED)

    def transition(self, state: ProductState) -> None:
        if self.finished:
            raise RuntimeError(f"Product {self.product_id} already finished in state {self.state.value}")
        self.state = state
        self.history.append(state)

    def abort(self, reason: AbortReason, detail: str) -> None:
        self.transition(ProductState.ABORTED)
        self.abort_reason = reason
        self.detail = detail

    def to_detail(self) -> dict[str, Any]:
        """JSON-serializable summary (API responses, persisted audit rows)."""
        return {
            "product_id": self.product_id,
            "product_title": self.product_title,
            "dry_run": self.dry_run,
            "state": self.state.value,
            "abort_reason": self.abort_reason.value if self.abort_reason else None,
            "history": [s.value for s in self.history],
            "stages": {stage.value: status.value for stage, status in self.stages.items()},
            "stage_errors": {stage.value: msg for stage, msg in self.stage_errors.items()},
            "variant_order": self.variant_order,
            "option_orders": self.option_orders,
            "image_order": self.image_order,
            "detail": self.detail,
        }


class ProductReconciler:
    """Ranks one product and pushes the three reorder writes."""

    def __init__(
        self,
        client: CatalogClient,
        color_option_names: Iterable[str],
        *,
        dry_run: bool = False,
    ):
        self.client = client
        self.color_option_names = list(color_option_names)
        self.dry_run = dry_run

    def _abort(self, outcome: ProductOutcome, reason: AbortReason, detail: str) -> ProductOutcome:
        logger.warning(f"Product \"{outcome.product_title}\" ({outcome.product_id}) aborted [{reason.value}]: {detail}")
        outcome.abort(reason, detail)
        return outcome

    async def reconcile(self, product: Product, tally: SalesTally) -> ProductOutcome:
        """Rank the product and push its writes.

        Raises:
            ReconcileError: Anything other than an expected write failure;
                the error's outcome is aborted with UNEXPECTED_ERROR.
        """
        title = product.title.strip()
        outcome = ProductOutcome(product_id=product.id, product_title=title, dry_run=self.dry_run)
        try:
            return await self._reconcile(product, tally, outcome)
        except Exception as e:
            if not outcome.finished:
                outcome.abort(AbortReason.UNEXPECTED_ERROR, f"{type(e).__name__}: {e}")
            raise ReconcileError(outcome) from e

    async def _reconcile(self, product: Product, tally: SalesTally, outcome: ProductOutcome) -> ProductOutcome:
        title = outcome.product_title
        sales = tally.for_product(title)
        if sales is None:
            return self._abort(outcome, AbortReason.NO_SALES_DATA, f"No sales data found in CSV for product: \"{title}\"")

        if not product.options or not product.variants:
            return self._abort(
                outcome,
                AbortReason.NO_CATALOG_DATA,
                f"Product \"{title}\" has no options or variants fetched "
                f"(options={len(product.options)}, variants={len(product.variants)})",
            )

        ranked = rank_variants(product.variants, sales)
        outcome.variant_order = [r.variant.title for r in ranked]
        logger.info(f"Desired variant order: {' | '.join(r.describe() for r in ranked)}")

        try:
            option_orders = plan_option_orders(product.options, sales, self.color_option_names)
        except NoColorAxisError as e:
            return self._abort(outcome, AbortReason.NO_COLOR_AXIS, str(e))

        for order in option_orders:
            outcome.option_orders[order.name] = order.values
            if order.is_color_axis:
                logger.info(f"New color OPTION VALUE order for \"{order.name}\": {', '.join(order.values)}")
            else:
                logger.info(f"Keeping original OPTION VALUE order for \"{order.name}\": {', '.join(order.values)}")

        image_order = sequence_images(ranked, product.images)
        outcome.image_order = image_order

        # Stage 1: option values (failure aborts the product)
        logger.info(f"Attempting to reorder option values for product {product.id}...")
        proceed = await self._write(
            outcome,
            WriteStage.OPTIONS,
            lambda: self.client.reorder_options(product.id, option_orders),
        )
        if not proceed:
            return outcome

        # Stage 2: variant positions (best-effort)
        logger.info(f"Attempting to explicitly reorder {len(ranked)} variants...")
        await self._write(
            outcome,
            WriteStage.VARIANTS,
            lambda: self.client.reorder_variants(product.id, variant_positions(ranked)),
        )

        # Stage 3: images (best-effort; empty sequence is a no-op)
        if image_order:
            logger.info(f"Attempting to explicitly reorder {len(image_order)} images...")
            await self._write(
                outcome,
                WriteStage.IMAGES,
                lambda: self.client.reorder_images(product.id, image_order),
            )
        else:
            logger.info("No images found to reorder.")
            outcome.stages[WriteStage.IMAGES] = StageStatus.SKIPPED
            outcome.transition(STAGE_STATE[WriteStage.IMAGES])

        outcome.transition(ProductState.DONE)
        return outcome

    async def _write(
        self,
        outcome: ProductOutcome,
        stage: WriteStage,
        call: Callable[[], Awaitable[MutationResult]],
    ) -> bool:
        """Attempt one write and apply the stage's failure policy.

        Returns:
            True if the product moves on to the next stage.
        """
        if self.dry_run:
            logger.info(f"[dry-run] Skipping {stage.value} write for product {outcome.product_id}")
            outcome.stages[stage] = StageStatus.DRY_RUN
            outcome.transition(STAGE_STATE[stage])
            return True

        status: StageStatus
        try:
            result = await call()
        except ShopifyError as e:
            status = StageStatus.FAILED
            outcome.stage_errors[stage] = str(e)
            logger.error(f"Error during {stage.value} reorder for product {outcome.product_id}: {e}")
        else:
            if result.ok:
                status = StageStatus.OK
                logger.info(f"Successfully reordered {stage.value} for product {outcome.product_id}.")
            elif result.product_returned:
                status = StageStatus.USER_ERRORS
                outcome.stage_errors[stage] = result.error_summary()
                logger.warning(
                    f"Partial errors reordering {stage.value} for product {outcome.product_id} "
                    f"(product data returned, continuing): {result.error_summary()}"
                )
            else:
                status = StageStatus.FAILED
                outcome.stage_errors[stage] = result.error_summary()
                logger.error(
                    f"Failed to reorder {stage.value} for product {outcome.product_id}: {result.error_summary()}"
                )

        outcome.stages[stage] = status
        if status is StageStatus.FAILED and WRITE_FAILURE_POLICY[stage] is FailurePolicy.ABORT:
            self._abort(
                outcome,
                STAGE_ABORT_REASON[stage],
                f"{stage.value} write failed: {outcome.stage_errors.get(stage, '')}",
            )
            return False

        outcome.transition(STAGE_STATE[stage])
        return True


# ============================================================
# Run loop
# ============================================================


@dataclass
class RunStats:
    products: int = 0
    processed: int = 0
    completed: int = 0
    aborted: dict[str, int] = field(default_factory=dict)
    variants_failed: int = 0
    images_failed: int = 0
    images_skipped: int = 0
    partial_errors: int = 0
    errors: int = 0
    stopped_early: bool = False
    lock_lost: bool = False

    def record(self, outcome: ProductOutcome) -> None:
        if outcome.aborted and outcome.abort_reason is not None:
            key = outcome.abort_reason.value
            self.aborted[key] = self.aborted.get(key, 0) + 1
        if outcome.done:
            self.completed += 1
        if outcome.stages[WriteStage.VARIANTS] is StageStatus.FAILED:
            self.variants_failed += 1
        if outcome.stages[WriteStage.IMAGES] is StageStatus.FAILED:
            self.images_failed += 1
        if outcome.stages[WriteStage.IMAGES] is StageStatus.SKIPPED:
            self.images_skipped += 1
        self.partial_errors += sum(1 for s in outcome.stages.values() if s is StageStatus.USER_ERRORS)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


async def run_sort(
    client: CatalogClient,
    tally: SalesTally,
    settings: Settings,
    *,
    sleep: SleepFn = asyncio.sleep,
    should_stop: Callable[[], bool] | None = None,
    on_outcome: Callable[[ProductOutcome], Awaitable[None]] | None = None,
    heartbeat: Callable[[], Awaitable[bool]] | None = None,
) -> RunStats:
    """Fetch the target products and reconcile them one at a time.

    Args:
        client: Catalog client (reads + the three writes).
        tally: Sales tally built once for the whole run.
        settings: Selection, color axis labels, delays, dry-run flag.
        sleep: Sleep used for pacing (injectable for tests).
        should_stop: Checked between products; True stops the run.
        on_outcome: Optional async callback per finished product, including
            products that failed unexpectedly (persistence).
        heartbeat: Optional async check after each product (run lock
            refresh). False stops the run before the next product.

    Returns:
        Aggregated run statistics.
    """
    stats = RunStats()
    fetch_scheduler = FixedDelayScheduler.from_ms(settings.api_fetch_delay_ms, sleep=sleep)
    product_scheduler = FixedDelayScheduler.from_ms(settings.api_mutation_delay_ms, sleep=sleep)

    products = await client.fetch_products(settings.product_search, scheduler=fetch_scheduler)
    stats.products = len(products)

    reconciler = ProductReconciler(client, settings.color_option_names, dry_run=settings.dry_run)
    if settings.dry_run:
        logger.info("Dry run: no catalog writes will be submitted.")

    def stop_requested() -> bool:
        if stats.lock_lost:
            return True
        return should_stop is not None and should_stop()

    async def handle(item: tuple[int, Product]) -> ProductOutcome:
        index, product = item
        logger.info(
            f"--- Processing product {index} of {stats.products}: \"{product.title}\" (ID: {product.id}) ---"
        )
        stats.processed += 1
        try:
            outcome = await reconciler.reconcile(product, tally)
        except ReconcileError as e:
            stats.errors += 1
            logger.exception(f"Unknown error processing product {product.id}")
            outcome = e.outcome
        else:
            stats.record(outcome)
        if on_outcome is not None:
            try:
                await on_outcome(outcome)
            except Exception:
                logger.exception(f"Failed to record outcome for product {product.id}")
        if heartbeat is not None:
            try:
                alive = await heartbeat()
            except Exception:
                logger.exception("Run heartbeat failed")
                alive = False
            if not alive:
                stats.lock_lost = True
                logger.error("Run lock lost; stopping before the next product")
        logger.info(
            f"--- Finished product: \"{product.title}\". Waiting {settings.api_mutation_delay_ms}ms ---"
        )
        return outcome

    await product_scheduler.drain(enumerate(products, start=1), handle, should_stop=stop_requested)

    if stats.processed < stats.products:
        stats.stopped_early = True
        logger.warning(f"Run stopped after {stats.processed} of {stats.products} products")

    logger.info(f"Run finished: {stats.as_dict()}")
    return stats
