"""
Product import for Catalog Sync.

A pool of worker threads drains one shared queue. Each item is an idempotent
upsert keyed by SKU: an existing variant means the product is skipped.
"""

import logging
import queue
import threading

from .catalog import ImportQueueItem, build_metadata, format_price, join_path
from .config import RunConfig
from .errors import DataIntegrityError, SyncCancelled
from .saleor_api import (
    PRODUCT_CHANNEL_LISTING_UPDATE_MUTATION,
    PRODUCT_CREATE_MUTATION,
    PRODUCT_VARIANT_CREATE_MUTATION,
    VARIANT_BY_SKU_QUERY,
    VARIANT_CHANNEL_LISTING_UPDATE_MUTATION,
    check_payload,
)

PROGRESS_EVERY = 25

IMPORTED = "imported"
SKIPPED = "skipped"


def build_queue_items(products, category_map):
    """
    Resolve each product's category path to a remote category id.

    Args:
        products: ProductRecords to import
        category_map: Joined category path -> category id

    Returns:
        List of ImportQueueItem

    Raises:
        DataIntegrityError: a product's category path has no mapping
    """
    items = []
    for product in products:
        key = join_path(product.category_path)
        category_id = category_map.get(key)
        if not category_id:
            raise DataIntegrityError(f"No category found for path '{key}' (SKU {product.sku})")
        items.append(ImportQueueItem(product=product, category_id=category_id))
    return items


def import_product(client, item: ImportQueueItem, product_type_id, channel_id):
    """
    Create one product with its default variant, channel listing and price.

    Steps run in order and every step is fatal on error:
    SKU lookup (skip if found), product, variant, product channel listing,
    variant channel listing.

    Returns:
        IMPORTED or SKIPPED
    """
    product = item.product
    label = f"'{product.name}' (SKU {product.sku})"

    existing = client.execute(VARIANT_BY_SKU_QUERY, {"sku": product.sku})
    if (existing.get("productVariant") or {}).get("id"):
        logging.debug(f"  SKU {product.sku} already imported, skipping")
        return SKIPPED

    metadata = build_metadata(product)

    data = client.execute(PRODUCT_CREATE_MUTATION, {
        "input": {
            "name": product.name,
            "slug": product.slug,
            "productType": product_type_id,
            "category": item.category_id,
            "metadata": metadata,
        }
    })
    result = check_payload(data.get("productCreate"), f"Failed to create product {label}")
    product_id = (result.get("product") or {}).get("id")
    if not product_id:
        raise DataIntegrityError(f"productCreate returned no id for {label}")

    data = client.execute(PRODUCT_VARIANT_CREATE_MUTATION, {
        "input": {
            "product": product_id,
            "sku": product.sku,
            "name": product.name,
            "trackInventory": False,
            "attributes": [],
            "metadata": metadata,
        }
    })
    result = check_payload(data.get("productVariantCreate"), f"Failed to create variant {label}")
    variant_id = (result.get("productVariant") or {}).get("id")
    if not variant_id:
        raise DataIntegrityError(f"productVariantCreate returned no id for {label}")

    data = client.execute(PRODUCT_CHANNEL_LISTING_UPDATE_MUTATION, {
        "id": product_id,
        "input": {
            "updateChannels": [
                {
                    "channelId": channel_id,
                    "isPublished": True,
                    "visibleInListings": True,
                    "isAvailableForPurchase": True,
                }
            ]
        }
    })
    check_payload(data.get("productChannelListingUpdate"), f"Failed to publish product {label}")

    price = format_price(product.price.amount)
    data = client.execute(VARIANT_CHANNEL_LISTING_UPDATE_MUTATION, {
        "id": variant_id,
        "input": [
            {
                "channelId": channel_id,
                "price": price,
                "costPrice": price,
            }
        ]
    })
    check_payload(data.get("productVariantChannelListingUpdate"), f"Failed to set price for {label}")

    return IMPORTED


class ImportProgress:
    """Shared completion counter; logs every PROGRESS_EVERY items and the last one."""

    def __init__(self, total):
        self.total = total
        self.completed = 0
        self.imported = 0
        self.skipped = 0
        self._lock = threading.Lock()

    def record(self, outcome, worker_name):
        with self._lock:
            self.completed += 1
            if outcome == IMPORTED:
                self.imported += 1
            else:
                self.skipped += 1
            completed = self.completed

        if completed % PROGRESS_EVERY == 0 or completed == self.total:
            logging.info(f"[{completed}/{self.total}] Processed ({worker_name})")


def import_products(client, items, product_type_id, channel_id, run_config: RunConfig,
                    cancel_event=None, on_item_done=None):
    """
    Import items with run_config.concurrency worker threads.

    Each item is dequeued by exactly one worker. The first failure stops the
    other workers after their current item and is re-raised here.

    Args:
        client: SaleorClient
        items: ImportQueueItems, in import order
        product_type_id: Product type for every product
        channel_id: Channel to publish into
        run_config: RunConfig (concurrency, delay_ms)
        cancel_event: Optional threading.Event for operator cancellation
        on_item_done: Optional callback(item, outcome) after each item

    Returns:
        Dictionary with total, imported and skipped counts
    """
    cancel_event = cancel_event or threading.Event()
    work_queue = queue.Queue()
    for item in items:
        work_queue.put(item)

    progress = ImportProgress(len(items))
    stop_event = threading.Event()
    failures = []
    failures_lock = threading.Lock()
    delay_seconds = run_config.delay_ms / 1000.0

    def worker():
        worker_name = threading.current_thread().name
        while not stop_event.is_set():
            if cancel_event.is_set():
                with failures_lock:
                    failures.append(SyncCancelled("Import cancelled by operator"))
                stop_event.set()
                return

            try:
                item = work_queue.get_nowait()
            except queue.Empty:
                return

            try:
                outcome = import_product(client, item, product_type_id, channel_id)
                progress.record(outcome, worker_name)
                if on_item_done is not None:
                    on_item_done(item, outcome)
            except Exception as e:
                logging.error(f"Error for SKU {item.product.sku}: {e}")
                with failures_lock:
                    failures.append(e)
                stop_event.set()
            finally:
                # Applied after every item, failed ones included
                if delay_seconds > 0:
                    cancel_event.wait(delay_seconds)

    worker_count = max(1, min(run_config.concurrency, len(items) or 1))
    threads = [
        threading.Thread(target=worker, name=f"worker-{index + 1}", daemon=True)
        for index in range(worker_count)
    ]
    for thread in threads:
        thread.start()
    try:
        for thread in threads:
            thread.join()
    except KeyboardInterrupt:
        logging.warning("Interrupted, waiting for workers to finish their current item...")
        cancel_event.set()
        for thread in threads:
            thread.join()
        raise SyncCancelled("Import interrupted by operator")

    if failures:
        raise failures[0]

    return {
        "total": progress.total,
        "imported": progress.imported,
        "skipped": progress.skipped,
    }
