"""
Curated catalog loading, validation and flattening.

The catalog document is {"categories": [CategoryNode, ...]} where every node
carries its subcategories and products. Category paths are joined with
PATH_SEPARATOR both here and in the taxonomy map, so product category paths
must spell category names exactly as the tree does.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import CatalogError

PATH_SEPARATOR = " > "


class Price(BaseModel):
    amount: Union[int, float, str] = 0
    currency: str = ""


class ProductRecord(BaseModel):
    """A curated product; sku is the idempotency key on the remote side."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sku: str
    name: str
    slug: str
    unit: str = ""
    category_path: Tuple[str, ...] = Field(
        validation_alias=AliasChoices("category_path", "categoryPath")
    )
    price: Price = Field(default_factory=Price)
    comment: Optional[str] = None


class CategoryNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    slug: str
    subcategories: List["CategoryNode"] = Field(default_factory=list)
    products: List[ProductRecord] = Field(default_factory=list)


class CatalogConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: List[CategoryNode] = Field(default_factory=list)


@dataclass(frozen=True)
class ImportQueueItem:
    """A product paired with the remote id of its category."""
    product: ProductRecord
    category_id: str


def join_path(path) -> str:
    return PATH_SEPARATOR.join(path)


def load_catalog(path: str) -> CatalogConfig:
    """
    Load and validate the curated catalog document.

    Args:
        path: Path to catalog JSON file

    Returns:
        CatalogConfig

    Raises:
        CatalogError: file missing, not JSON, or not a valid catalog
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise CatalogError(f"Catalog file not found: {path}")
    except json.JSONDecodeError as e:
        raise CatalogError(f"Invalid JSON in catalog file {path}: {e}")

    try:
        catalog = CatalogConfig.model_validate(data)
    except ValidationError as e:
        raise CatalogError(f"Invalid catalog document {path}: {e}")

    logging.info(f"Loaded catalog {path}: {len(catalog.categories)} root categories")
    return catalog


def iter_categories(categories):
    """
    Yield (path, node) for every category, depth-first pre-order.

    Uses an explicit stack so deep trees do not hit the recursion limit.
    """
    stack = [((node.name,), node) for node in reversed(categories)]
    while stack:
        path, node = stack.pop()
        yield path, node
        for child in reversed(node.subcategories):
            stack.append((path + (child.name,), child))


def flatten_catalog(catalog: CatalogConfig) -> List[Tuple[Tuple[str, ...], ProductRecord]]:
    """
    Collect every product in the tree, depth-first, in document order.

    Returns:
        List of (tree_path, product) where tree_path is the path of the
        category node the product was found under
    """
    items = []
    for path, node in iter_categories(catalog.categories):
        for product in node.products:
            items.append((path, product))
    return items


def select_window(items, offset: int = 0, limit: Optional[int] = None):
    """
    Deterministic slice items[offset : min(offset + limit, len(items))].

    A missing limit selects everything from offset on.
    """
    offset = max(offset or 0, 0)
    end = len(items) if limit is None else min(offset + limit, len(items))
    return items[offset:end]


def format_price(amount) -> str:
    """Stringify a price amount the way Saleor expects PositiveDecimal input."""
    if amount is None or amount == "":
        return "0"
    if isinstance(amount, float) and amount.is_integer():
        return str(int(amount))
    return str(amount)


def build_metadata(product: ProductRecord) -> List[Dict[str, str]]:
    """Metadata entries attached to both the product and its variant."""
    metadata = [
        {"key": "unit", "value": str(product.unit or "")},
        {"key": "category_path", "value": join_path(product.category_path)},
    ]
    if product.comment:
        metadata.append({"key": "comment", "value": str(product.comment)})
    return metadata


def validate_catalog(catalog: CatalogConfig):
    """
    Check the catalog for problems before touching the remote service.

    Returns:
        Tuple of (errors, warnings), each a list of messages. Errors are
        product category paths with no matching category node; warnings are
        duplicate SKUs and duplicate category slugs.
    """
    errors = []
    warnings = []

    known_paths = set()
    slug_counts = Counter()
    for path, node in iter_categories(catalog.categories):
        known_paths.add(join_path(path))
        slug_counts[node.slug] += 1

    for slug, count in slug_counts.items():
        if count > 1:
            warnings.append(f"Category slug '{slug}' is used by {count} categories")

    sku_counts = Counter()
    for tree_path, product in flatten_catalog(catalog):
        sku_counts[product.sku] += 1
        key = join_path(product.category_path)
        if key not in known_paths:
            errors.append(f"SKU {product.sku}: category path '{key}' does not match any category")
        elif key != join_path(tree_path):
            warnings.append(
                f"SKU {product.sku} is listed under '{join_path(tree_path)}' but assigned to '{key}'"
            )

    for sku, count in sku_counts.items():
        if count > 1:
            # Two workers racing on the same SKU can create duplicates
            warnings.append(f"SKU {sku} appears {count} times in the catalog")

    return errors, warnings
