"""
Catalog sync orchestration.

Phases run strictly in order: preflight, reset (unless skipped), category
tree, product import. Any error ends the run; nothing is rolled back.
"""

import logging
import threading
from datetime import datetime

from .catalog import flatten_catalog, select_window, validate_catalog
from .config import (
    DEFAULT_PRODUCT_TYPE_NAME,
    DEFAULT_PRODUCT_TYPE_SLUG,
    DEFAULT_RETRY_BASE_DELAY,
    SCRIPT_VERSION,
    RunConfig,
    log_and_status,
    parse_float,
    validate_config,
)
from .errors import CatalogError, DataIntegrityError
from .importer import build_queue_items, import_products
from .reset import reset_catalog
from .saleor_api import CHANNEL_QUERY, SaleorClient
from .state import (
    CheckpointRecorder,
    clear_checkpoint,
    compute_resume_offset,
    load_checkpoint,
)
from .taxonomy import build_category_map, ensure_product_type

PHASE_IDLE = "Idle"
PHASE_RESETTING = "Resetting"
PHASE_BUILDING_TAXONOMY = "BuildingTaxonomy"
PHASE_IMPORTING = "Importing"
PHASE_DONE = "Done"
PHASE_FAILED = "Failed"


def fetch_channel(client, slug, status_fn=None):
    """
    Resolve a channel by slug.

    Returns:
        Channel dictionary (id, name, currencyCode, isActive)

    Raises:
        DataIntegrityError: no channel with that slug
    """
    data = client.execute(CHANNEL_QUERY, {"slug": slug})
    channel = data.get("channel") or {}
    if not channel.get("id"):
        raise DataIntegrityError(f"Channel with slug '{slug}' not found")

    log_and_status(
        status_fn,
        f"✅ Channel found: {channel.get('name')} ({channel.get('currencyCode')}), "
        f"active: {channel.get('isActive')}"
    )
    return channel


def build_client(cfg, cancel_event=None):
    """Create a SaleorClient from a configuration dictionary."""
    validate_config(cfg)
    return SaleorClient(
        cfg["SALEOR_API_URL"],
        cfg["SALEOR_APP_TOKEN"],
        retry_base_delay=parse_float("RETRY_BASE_DELAY", cfg.get("RETRY_BASE_DELAY"),
                                     DEFAULT_RETRY_BASE_DELAY),
        cancel_event=cancel_event,
    )


def check_catalog(catalog, status_fn=None):
    """
    Run catalog validation and log the findings.

    Raises:
        CatalogError: the catalog has errors that would abort the import
    """
    errors, warnings = validate_catalog(catalog)

    for warning in warnings:
        log_and_status(status_fn, f"⚠️  {warning}", "warning")
    for error in errors:
        log_and_status(status_fn, f"❌ {error}", "error")

    if errors:
        raise CatalogError(f"Catalog validation failed with {len(errors)} error(s)")

    log_and_status(status_fn, f"✅ Catalog validated ({len(warnings)} warning(s))")


class SyncRun:
    """Tracks the phase of a run so failures can be reported with context."""

    def __init__(self, status_fn=None):
        self.status_fn = status_fn
        self.phase = PHASE_IDLE

    def enter(self, phase):
        self.phase = phase
        log_and_status(self.status_fn, "=" * 80)
        log_and_status(self.status_fn, f"Phase: {phase}")
        log_and_status(self.status_fn, "=" * 80)


def run_sync(cfg, run_config: RunConfig, catalog, client=None, status_fn=None, cancel_event=None):
    """
    Mirror the curated catalog into Saleor.

    Args:
        cfg: Configuration dictionary
        run_config: RunConfig for this run
        catalog: CatalogConfig
        client: SaleorClient (built from cfg when omitted)
        status_fn: Optional status update function
        cancel_event: Optional threading.Event for operator cancellation

    Returns:
        Summary dictionary with deletion, category and import counts
    """
    cancel_event = cancel_event or threading.Event()
    if client is None:
        client = build_client(cfg, cancel_event)

    run = SyncRun(status_fn)
    started = datetime.now()
    summary = {"deleted": None, "categories": 0, "total": 0, "imported": 0, "skipped": 0}

    log_and_status(status_fn, "=" * 80)
    log_and_status(status_fn, f"Saleor Catalog Sync - {SCRIPT_VERSION}")
    log_and_status(status_fn, f"Started: {started.strftime('%Y-%m-%d %H:%M:%S')}")
    log_and_status(status_fn, f"API: {cfg.get('SALEOR_API_URL')}")
    log_and_status(status_fn, f"Channel: {cfg.get('CHANNEL_SLUG')}")
    log_and_status(status_fn, "=" * 80)

    try:
        check_catalog(catalog, status_fn)
        # Resolved before any destructive step so a bad slug never wipes the catalog
        channel = fetch_channel(client, cfg.get("CHANNEL_SLUG"), status_fn)

        checkpoint_file = cfg.get("CHECKPOINT_FILE")

        if run_config.skip_reset:
            log_and_status(status_fn, "Reset skipped (SKIP_RESET=true).")
        else:
            run.enter(PHASE_RESETTING)
            summary["deleted"] = reset_catalog(client, status_fn)
            if checkpoint_file:
                clear_checkpoint(checkpoint_file)

        run.enter(PHASE_BUILDING_TAXONOMY)
        product_type_id = ensure_product_type(
            client,
            cfg.get("PRODUCT_TYPE_NAME") or DEFAULT_PRODUCT_TYPE_NAME,
            cfg.get("PRODUCT_TYPE_SLUG") or DEFAULT_PRODUCT_TYPE_SLUG,
            status_fn,
        )
        category_map = build_category_map(client, catalog.categories, status_fn)
        summary["categories"] = len(category_map)

        run.enter(PHASE_IMPORTING)
        all_products = [product for _, product in flatten_catalog(catalog)]

        completed_skus = load_checkpoint(checkpoint_file) if checkpoint_file else set()
        offset = run_config.offset
        if offset is None:
            offset = compute_resume_offset([p.sku for p in all_products], completed_skus)
            if offset:
                log_and_status(status_fn, f"Resuming from checkpoint at item {offset}")

        window = select_window(all_products, offset, run_config.limit)
        log_and_status(
            status_fn,
            f"Products in catalog: {len(all_products)}. "
            f"Processing range {offset}-{offset + len(window)}."
        )

        items = build_queue_items(window, category_map)

        on_item_done = None
        if checkpoint_file:
            recorder = CheckpointRecorder(checkpoint_file, completed_skus)

            def on_item_done(item, outcome):
                recorder.record(item.product.sku)

        result = import_products(
            client, items, product_type_id, channel["id"], run_config,
            cancel_event=cancel_event, on_item_done=on_item_done,
        )
        summary.update(result)

    except Exception as e:
        failed_phase = run.phase
        run.phase = PHASE_FAILED
        log_and_status(status_fn, f"❌ Sync failed during {failed_phase}: {e}", "error")
        raise

    run.phase = PHASE_DONE
    elapsed = datetime.now() - started
    log_and_status(status_fn, "=" * 80)
    log_and_status(
        status_fn,
        f"✅ Sync completed in {elapsed}: {summary['categories']} categories, "
        f"{summary['imported']} imported, {summary['skipped']} skipped of {summary['total']}"
    )
    log_and_status(status_fn, "=" * 80)
    logging.debug(f"Sync summary: {summary}")
    return summary
