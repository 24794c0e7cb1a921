"""
Remote catalog reset for Catalog Sync.

Brings Saleor to an empty baseline: products first, then categories, then
product types. Safe to re-run after a crash mid-reset.
"""

import logging

from .config import log_and_status
from .errors import RemoteBusinessError
from .saleor_api import (
    CATEGORY_BULK_DELETE_MUTATION,
    PRODUCT_BULK_DELETE_MUTATION,
    PRODUCT_TYPE_BULK_DELETE_MUTATION,
    PRODUCT_TYPES_QUERY,
    PRODUCTS_QUERY,
    ROOT_CATEGORIES_QUERY,
    join_error_messages,
    paginate_ids,
)

DELETE_CHUNK_SIZE = 50

# kind -> (list query, connection key, bulk delete mutation, payload key, label)
ENTITY_KINDS = {
    "products": (PRODUCTS_QUERY, "products", PRODUCT_BULK_DELETE_MUTATION,
                 "productBulkDelete", "products"),
    "categories": (ROOT_CATEGORIES_QUERY, "categories", CATEGORY_BULK_DELETE_MUTATION,
                   "categoryBulkDelete", "root categories"),
    "product_types": (PRODUCT_TYPES_QUERY, "productTypes", PRODUCT_TYPE_BULK_DELETE_MUTATION,
                      "productTypeBulkDelete", "product types"),
}

NOT_FOUND_CODE = "NOT_FOUND"
# Older Saleor versions report a vanished id only through the message text
NOT_FOUND_MESSAGE = "There is no node of type"


def _kind(kind):
    try:
        return ENTITY_KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {kind}")


def chunk(items, size):
    """Split a list into consecutive chunks of at most size items."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def is_already_deleted(error) -> bool:
    """True when an error entry says the target no longer exists."""
    if not isinstance(error, dict):
        return False
    if error.get("code") == NOT_FOUND_CODE:
        return True
    return NOT_FOUND_MESSAGE in (error.get("message") or "")


def fetch_all_ids(client, kind):
    """
    List the ids of every entity of a kind.

    Args:
        client: SaleorClient
        kind: "products", "categories" (root level only) or "product_types"

    Returns:
        List of ids in listing order
    """
    query, connection_key, _, _, _ = _kind(kind)
    return paginate_ids(client, query, connection_key)


def bulk_delete(client, kind, ids, chunk_size=DELETE_CHUNK_SIZE, status_fn=None):
    """
    Delete entities in chunks, one bulk mutation per chunk.

    Errors saying the target is already gone are dropped; anything else
    aborts the run.

    Args:
        client: SaleorClient
        kind: Entity kind (see ENTITY_KINDS)
        ids: Ids to delete
        chunk_size: Maximum ids per mutation
        status_fn: Optional status update function

    Returns:
        Total number of entities the service reported as deleted
    """
    _, _, mutation, payload_key, label = _kind(kind)
    total_deleted = 0

    for group in chunk(list(ids), chunk_size):
        try:
            data = client.execute(mutation, {"ids": group})
        except RemoteBusinessError as e:
            if e.errors and all(is_already_deleted(err) for err in e.errors):
                log_and_status(
                    status_fn,
                    f"  Some {label} are already gone, skipping this batch of {len(group)}",
                    "warning"
                )
                continue
            raise

        result = data.get(payload_key) or {}
        raw_errors = result.get("errors") or []
        fatal_errors = [err for err in raw_errors if not is_already_deleted(err)]
        if fatal_errors:
            raise RemoteBusinessError(
                f"Failed to delete {label}: {join_error_messages(fatal_errors, ', ')}",
                fatal_errors
            )

        count = result.get("count")
        if count is None:
            count = len(group)
        total_deleted += count

        suffix = " (some were already deleted)" if raw_errors else ""
        log_and_status(status_fn, f"  Deleted {label}: {count}{suffix}")

    return total_deleted


def delete_until_empty(client, kind, status_fn=None):
    """
    Repeat fetch -> bulk delete until a fetch comes back empty.

    Deleting root categories cascades to their children, but a pass can
    leave new roots behind, so a single pass is not enough for deep trees.
    A chunk skipped because one of its ids vanished is also picked up by
    the next pass.

    Returns:
        Tuple of (passes, total_deleted)
    """
    _, _, _, _, label = _kind(kind)
    passes = 0
    total_deleted = 0

    ids = fetch_all_ids(client, kind)
    while ids:
        passes += 1
        log_and_status(status_fn, f"Deleting {len(ids)} {label}... (pass {passes})")
        total_deleted += bulk_delete(client, kind, ids, status_fn=status_fn)
        ids = fetch_all_ids(client, kind)

    if not passes:
        log_and_status(status_fn, f"No {label} to delete.")

    return passes, total_deleted


def reset_catalog(client, status_fn=None):
    """
    Delete every product, category and product type.

    Returns:
        Dictionary of deletion counts per entity kind
    """
    # A skipped chunk leaves live ids behind, so every kind is re-listed until empty
    product_passes, products_deleted = delete_until_empty(client, "products", status_fn)
    category_passes, categories_deleted = delete_until_empty(client, "categories", status_fn)
    type_passes, types_deleted = delete_until_empty(client, "product_types", status_fn)

    logging.debug(
        f"Reset finished in {product_passes} product pass(es), {category_passes} category pass(es) "
        f"and {type_passes} product type pass(es)"
    )

    return {
        "products": products_deleted,
        "categories": categories_deleted,
        "product_types": types_deleted,
    }
