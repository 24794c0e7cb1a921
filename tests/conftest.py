"""
Pytest configuration and shared fixtures for Saleor Catalog Sync tests.
"""

import copy
import json
import re
import sys
import tempfile
import threading
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sync_modules.catalog import CatalogConfig
from sync_modules.errors import RemoteBusinessError


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================

@pytest.fixture
def scenario_catalog_data():
    """Single category, single product catalog."""
    return {
        "categories": [
            {
                "name": "Electronics",
                "slug": "electronics",
                "subcategories": [],
                "products": [
                    {
                        "sku": "A1",
                        "name": "Phone",
                        "slug": "phone",
                        "unit": "pcs",
                        "categoryPath": ["Electronics"],
                        "price": {"amount": 100, "currency": "USD"}
                    }
                ]
            }
        ]
    }


@pytest.fixture
def sample_catalog_data():
    """Two-level catalog with products at both levels."""
    return {
        "categories": [
            {
                "name": "Phones",
                "slug": "phones",
                "products": [
                    {
                        "sku": "PH-1",
                        "name": "Basic Phone",
                        "slug": "basic-phone",
                        "unit": "pcs",
                        "category_path": ["Phones"],
                        "price": {"amount": 49.99, "currency": "USD"}
                    }
                ],
                "subcategories": [
                    {
                        "name": "Smartphones",
                        "slug": "smartphones",
                        "subcategories": [],
                        "products": [
                            {
                                "sku": "SP-1",
                                "name": "Smartphone X",
                                "slug": "smartphone-x",
                                "unit": "pcs",
                                "category_path": ["Phones", "Smartphones"],
                                "price": {"amount": 599, "currency": "USD"},
                                "comment": "Display model"
                            },
                            {
                                "sku": "SP-2",
                                "name": "Smartphone Y",
                                "slug": "smartphone-y",
                                "unit": "pcs",
                                "category_path": ["Phones", "Smartphones"],
                                "price": {"amount": "699.50", "currency": "USD"}
                            }
                        ]
                    }
                ]
            },
            {
                "name": "Accessories",
                "slug": "accessories",
                "subcategories": [
                    {
                        "name": "Cables",
                        "slug": "cables",
                        "products": [
                            {
                                "sku": "CB-1",
                                "name": "USB-C Cable",
                                "slug": "usb-c-cable",
                                "unit": "m",
                                "category_path": ["Accessories", "Cables"],
                                "price": {"amount": 9, "currency": "USD"}
                            }
                        ]
                    }
                ],
                "products": []
            }
        ]
    }


@pytest.fixture
def sample_catalog(sample_catalog_data):
    return CatalogConfig.model_validate(sample_catalog_data)


@pytest.fixture
def scenario_catalog(scenario_catalog_data):
    return CatalogConfig.model_validate(scenario_catalog_data)


def make_catalog_data(product_count, category_name="Bulk", slug="bulk"):
    """Catalog with one category holding product_count products."""
    return {
        "categories": [
            {
                "name": category_name,
                "slug": slug,
                "subcategories": [],
                "products": [
                    {
                        "sku": f"SKU-{i:03d}",
                        "name": f"Product {i}",
                        "slug": f"product-{i}",
                        "unit": "pcs",
                        "category_path": [category_name],
                        "price": {"amount": i + 1, "currency": "USD"}
                    }
                    for i in range(product_count)
                ]
            }
        ]
    }


@pytest.fixture
def bulk_catalog_factory():
    """Factory building a CatalogConfig with N products in one category."""
    def factory(product_count):
        return CatalogConfig.model_validate(make_catalog_data(product_count))
    return factory


# ============================================================================
# TEMPORARY FILE FIXTURES
# ============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def catalog_file(temp_dir, sample_catalog_data):
    """Write the sample catalog to a temporary JSON file."""
    path = temp_dir / "catalog_curated.json"
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(sample_catalog_data, f, ensure_ascii=False, indent=4)
    return path


@pytest.fixture
def base_cfg(temp_dir):
    """Configuration dictionary as produced by load_config()."""
    return {
        "SALEOR_API_URL": "https://saleor.test/graphql/",
        "SALEOR_APP_TOKEN": "test_token",
        "CHANNEL_SLUG": "default-channel",
        "CATALOG_FILE": str(temp_dir / "catalog_curated.json"),
        "CHECKPOINT_FILE": str(temp_dir / "sync_state.json"),
        "LOG_FILE": "",
        "PRODUCT_TYPE_NAME": "Electronics and Accessories",
        "PRODUCT_TYPE_SLUG": "electronics",
        "RETRY_BASE_DELAY": "0",
        "SKIP_RESET": "false",
        "IMPORT_CONCURRENCY": "1",
        "IMPORT_DELAY_MS": "0",
        "IMPORT_OFFSET": "",
        "IMPORT_LIMIT": "",
    }


# ============================================================================
# FAKE SALEOR BACKEND
# ============================================================================

OPERATION_RE = re.compile(r"(query|mutation)\s+(\w+)")


class FakeSaleor:
    """
    In-memory stand-in for SaleorClient answering the sync's GraphQL documents.

    Entities are stored as plain dicts. When cascade_categories is False,
    deleting a category promotes its children to roots instead of removing
    them, which is how a fixture with several root "waves" is built.
    """

    def __init__(self, page_size=100):
        self.page_size = page_size
        self.cascade_categories = True
        self.products = {}
        self.variants = {}
        self.categories = {}
        self.product_types = {}
        self.channels = {
            "default-channel": {
                "id": "Q2hhbm5lbDox",
                "name": "Default Channel",
                "currencyCode": "USD",
                "isActive": True,
            }
        }
        self.product_listings = {}
        self.variant_listings = {}
        self.calls = []
        self.fail_on = {}
        self._counter = 0
        self._lock = threading.Lock()

    # -- helpers ------------------------------------------------------------

    def _next_id(self, prefix):
        self._counter += 1
        return f"{prefix}:{self._counter}"

    def operations(self, name=None):
        names = [op for op, _ in self.calls]
        if name is None:
            return names
        return [op for op in names if op == name]

    def add_category(self, name, slug, parent=None):
        category_id = self._next_id("Category")
        self.categories[category_id] = {"id": category_id, "name": name, "slug": slug, "parent": parent}
        return category_id

    def add_product_type(self, name, slug=None):
        type_id = self._next_id("ProductType")
        self.product_types[type_id] = {"id": type_id, "name": name, "slug": slug or name.lower()}
        return type_id

    def add_product(self, name, sku=None):
        product_id = self._next_id("Product")
        self.products[product_id] = {"id": product_id, "name": name}
        if sku:
            variant_id = self._next_id("ProductVariant")
            self.variants[variant_id] = {"id": variant_id, "sku": sku, "product": product_id}
        return product_id

    def _page(self, nodes, variables, fields=("id",)):
        start = int(variables.get("after") or 0)
        page = nodes[start:start + self.page_size]
        end = start + len(page)
        return {
            "pageInfo": {"hasNextPage": end < len(nodes), "endCursor": str(end)},
            "edges": [{"node": {f: node[f] for f in fields}} for node in page],
        }

    def _bulk_delete(self, store, ids, type_name):
        count = 0
        errors = []
        for entity_id in ids:
            if entity_id in store:
                del store[entity_id]
                count += 1
            else:
                errors.append({
                    "field": "ids",
                    "code": "NOT_FOUND",
                    "message": f"There is no node of type {type_name} with ID {entity_id}",
                })
        return {"count": count, "errors": errors}

    def _delete_categories(self, ids):
        count = 0
        errors = []
        for category_id in ids:
            if category_id not in self.categories:
                errors.append({
                    "field": "ids",
                    "code": "NOT_FOUND",
                    "message": f"There is no node of type Category with ID {category_id}",
                })
                continue
            del self.categories[category_id]
            count += 1
            children = [c for c in self.categories.values() if c["parent"] == category_id]
            for child in children:
                if self.cascade_categories:
                    self._delete_subtree(child["id"])
                else:
                    child["parent"] = None
        return {"count": count, "errors": errors}

    def _delete_subtree(self, category_id):
        for child in [c for c in self.categories.values() if c["parent"] == category_id]:
            self._delete_subtree(child["id"])
        self.categories.pop(category_id, None)

    # -- GraphQL entry point -------------------------------------------------

    def execute(self, query, variables=None):
        variables = copy.deepcopy(variables or {})
        match = OPERATION_RE.search(query)
        name = match.group(2)

        with self._lock:
            self.calls.append((name, variables))
            if name in self.fail_on:
                error = self.fail_on[name]
                if isinstance(error, Exception):
                    raise error
                return {self._payload_key(name): {"errors": [{"message": error}]}}
            handler = getattr(self, f"_op_{name}")
            return handler(variables)

    @staticmethod
    def _payload_key(name):
        return name[0].lower() + name[1:]

    def _op_Products(self, variables):
        return {"products": self._page(list(self.products.values()), variables)}

    def _op_RootCategories(self, variables):
        roots = [c for c in self.categories.values() if c["parent"] is None]
        return {"categories": self._page(roots, variables)}

    def _op_ProductTypes(self, variables):
        return {"productTypes": self._page(list(self.product_types.values()), variables)}

    def _op_ExistingProductTypes(self, variables):
        return {"productTypes": self._page(list(self.product_types.values()), variables, ("id", "name"))}

    def _op_Channel(self, variables):
        return {"channel": self.channels.get(variables["slug"])}

    def _op_CategoryBySlug(self, variables):
        for category in self.categories.values():
            if category["slug"] == variables["slug"]:
                return {"category": {"id": category["id"]}}
        return {"category": None}

    def _op_VariantBySku(self, variables):
        for variant in self.variants.values():
            if variant["sku"] == variables["sku"]:
                return {"productVariant": {"id": variant["id"]}}
        return {"productVariant": None}

    def _op_ProductBulkDelete(self, variables):
        result = self._bulk_delete(self.products, variables["ids"], "Product")
        for variant_id in [v["id"] for v in self.variants.values() if v["product"] not in self.products]:
            del self.variants[variant_id]
        return {"productBulkDelete": result}

    def _op_CategoryBulkDelete(self, variables):
        return {"categoryBulkDelete": self._delete_categories(variables["ids"])}

    def _op_ProductTypeBulkDelete(self, variables):
        return {"productTypeBulkDelete": self._bulk_delete(self.product_types, variables["ids"], "ProductType")}

    def _op_ProductTypeCreate(self, variables):
        data = variables["input"]
        type_id = self.add_product_type(data["name"], data["slug"])
        return {"productTypeCreate": {"productType": {"id": type_id, "name": data["name"]}, "errors": []}}

    def _op_CategoryCreate(self, variables):
        data = variables["input"]
        parent = variables.get("parent")
        if any(c["slug"] == data["slug"] for c in self.categories.values()):
            return {"categoryCreate": {
                "category": None,
                "errors": [{"field": "slug", "code": "UNIQUE", "message": "Category with this Slug already exists."}]
            }}
        category_id = self.add_category(data["name"], data["slug"], parent)
        return {"categoryCreate": {"category": {"id": category_id, "name": data["name"]}, "errors": []}}

    def _op_ProductCreate(self, variables):
        data = variables["input"]
        product_id = self._next_id("Product")
        self.products[product_id] = dict(data, id=product_id)
        return {"productCreate": {"product": {"id": product_id}, "errors": []}}

    def _op_ProductVariantCreate(self, variables):
        data = variables["input"]
        if any(v["sku"] == data["sku"] for v in self.variants.values()):
            return {"productVariantCreate": {
                "productVariant": None,
                "errors": [{"field": "sku", "code": "UNIQUE", "message": "Product variant with this SKU already exists."}]
            }}
        variant_id = self._next_id("ProductVariant")
        self.variants[variant_id] = dict(data, id=variant_id)
        return {"productVariantCreate": {"productVariant": {"id": variant_id}, "errors": []}}

    def _op_ProductChannelListingUpdate(self, variables):
        self.product_listings[variables["id"]] = variables["input"]["updateChannels"]
        return {"productChannelListingUpdate": {"errors": []}}

    def _op_ProductVariantChannelListingUpdate(self, variables):
        self.variant_listings[variables["id"]] = variables["input"]
        return {"productVariantChannelListingUpdate": {"errors": []}}


@pytest.fixture
def fake_saleor():
    """Empty in-memory Saleor backend."""
    return FakeSaleor()


@pytest.fixture
def business_error():
    """Factory for RemoteBusinessError with raw error entries."""
    def factory(*messages, code=None):
        errors = [{"message": m, "code": code} for m in messages]
        return RemoteBusinessError("\n".join(messages), errors)
    return factory


# ============================================================================
# UTILITY FIXTURES
# ============================================================================

@pytest.fixture
def mock_status_fn():
    """Mock status function that collects status messages."""
    messages = []

    def status_fn(msg):
        messages.append(msg)

    status_fn.messages = messages
    return status_fn
