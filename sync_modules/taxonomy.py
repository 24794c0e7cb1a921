"""
Category tree and product type setup for Catalog Sync.

Everything here checks for an existing entity before creating one, so a run
against a non-empty Saleor reuses what is already there.
"""

import logging
import time
from types import MappingProxyType

from .catalog import join_path
from .config import log_and_status
from .errors import DataIntegrityError, RemoteBusinessError
from .saleor_api import (
    CATEGORY_BY_SLUG_QUERY,
    CATEGORY_CREATE_MUTATION,
    EXISTING_PRODUCT_TYPES_QUERY,
    PRODUCT_TYPE_CREATE_MUTATION,
    check_payload,
    paginate_nodes,
)


def ensure_product_type(client, name, slug_base, status_fn=None):
    """
    Reuse the product type with the given name, or create it.

    Args:
        client: SaleorClient
        name: Canonical product type name
        slug_base: Slug prefix; a millisecond timestamp is appended on create
        status_fn: Optional status update function

    Returns:
        Product type id
    """
    for node in paginate_nodes(client, EXISTING_PRODUCT_TYPES_QUERY, "productTypes"):
        if node.get("name") == name:
            log_and_status(status_fn, f"Using existing product type '{name}': {node['id']}")
            return node["id"]

    product_type_input = {
        "name": name,
        "slug": f"{slug_base}-{int(time.time() * 1000)}",
        "hasVariants": True,
        "isShippingRequired": True,
        "isDigital": False,
        "kind": "NORMAL",
        "productAttributes": [],
        "variantAttributes": [],
    }

    data = client.execute(PRODUCT_TYPE_CREATE_MUTATION, {"input": product_type_input})
    result = check_payload(data.get("productTypeCreate"), f"Failed to create product type '{name}'")

    product_type = result.get("productType") or {}
    if not product_type.get("id"):
        raise DataIntegrityError(f"productTypeCreate returned no id for '{name}'")

    log_and_status(status_fn, f"✅ Created product type '{name}': {product_type['id']}")
    return product_type["id"]


def create_category(client, node, parent_id, path, category_map):
    """
    Find a category by slug or create it under parent_id.

    Records join_path(path + [node.name]) -> id in category_map. Children
    are not visited here; build_category_map drives the traversal.

    Args:
        client: SaleorClient
        node: CategoryNode
        parent_id: Remote id of the parent, or None for a root
        path: Names of the ancestors, root first
        category_map: Dictionary being filled

    Returns:
        Category id
    """
    current_path = tuple(path) + (node.name,)
    key = join_path(current_path)

    try:
        lookup = client.execute(CATEGORY_BY_SLUG_QUERY, {"slug": node.slug})
    except RemoteBusinessError as e:
        raise RemoteBusinessError(f"Failed to look up category '{node.name}': {e}", e.errors)

    existing = lookup.get("category") or {}
    if existing.get("id"):
        category_map[key] = existing["id"]
        logging.debug(f"  Reusing category {key}: {existing['id']}")
        return existing["id"]

    variables = {"input": {"name": node.name, "slug": node.slug}}
    if parent_id:
        variables["parent"] = parent_id

    try:
        data = client.execute(CATEGORY_CREATE_MUTATION, variables)
    except RemoteBusinessError as e:
        raise RemoteBusinessError(f"Failed to create category '{node.name}': {e}", e.errors)

    result = check_payload(data.get("categoryCreate"), f"Failed to create category '{node.name}'")
    category = result.get("category") or {}
    if not category.get("id"):
        raise DataIntegrityError(f"categoryCreate returned no id for '{node.name}'")

    category_map[key] = category["id"]
    logging.debug(f"  Created category {key}: {category['id']}")
    return category["id"]


def build_category_map(client, categories, status_fn=None):
    """
    Create (or reuse) the whole category tree, depth-first pre-order.

    Args:
        client: SaleorClient
        categories: Root CategoryNodes
        status_fn: Optional status update function

    Returns:
        Read-only mapping of joined category path -> category id
    """
    category_map = {}
    # (node, parent id, ancestor names); reversed so roots come off in document order
    stack = [(node, None, ()) for node in reversed(categories)]

    while stack:
        node, parent_id, path = stack.pop()
        category_id = create_category(client, node, parent_id, path, category_map)
        child_path = path + (node.name,)
        for child in reversed(node.subcategories):
            stack.append((child, category_id, child_path))

    log_and_status(status_fn, f"✅ Category tree ready: {len(category_map)} categories")
    return MappingProxyType(category_map)
