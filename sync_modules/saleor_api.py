"""
Saleor GraphQL API access for Catalog Sync.

All remote calls go through SaleorClient.execute(), which owns retry/backoff
for transient failures and turns every other failure into a SyncError.
"""

import json
import logging
import threading
import requests

from .errors import (
    ProtocolError,
    RateLimitExceeded,
    RemoteBusinessError,
    SyncCancelled,
)

MAX_ATTEMPTS = 5
RATE_LIMIT_MARKER = "Too Many Requests"

RETRYABLE_NETWORK_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


# ============================================================================
# GRAPHQL DOCUMENTS
# ============================================================================

PRODUCTS_QUERY = """
query Products($after: String) {
  products(first: 100, after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
      }
    }
  }
}
"""

ROOT_CATEGORIES_QUERY = """
query RootCategories($after: String) {
  categories(first: 100, after: $after, level: 0) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
      }
    }
  }
}
"""

PRODUCT_TYPES_QUERY = """
query ProductTypes($after: String) {
  productTypes(first: 100, after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
      }
    }
  }
}
"""

CHANNEL_QUERY = """
query Channel($slug: String!) {
  channel(slug: $slug) {
    id
    name
    currencyCode
    isActive
  }
}
"""

EXISTING_PRODUCT_TYPES_QUERY = """
query ExistingProductTypes($after: String) {
  productTypes(first: 100, after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
        name
      }
    }
  }
}
"""

CATEGORY_BY_SLUG_QUERY = """
query CategoryBySlug($slug: String!) {
  category(slug: $slug) {
    id
  }
}
"""

VARIANT_BY_SKU_QUERY = """
query VariantBySku($sku: String!) {
  productVariant(sku: $sku) {
    id
  }
}
"""

PRODUCT_BULK_DELETE_MUTATION = """
mutation ProductBulkDelete($ids: [ID!]!) {
  productBulkDelete(ids: $ids) {
    count
    errors {
      field
      code
      message
    }
  }
}
"""

CATEGORY_BULK_DELETE_MUTATION = """
mutation CategoryBulkDelete($ids: [ID!]!) {
  categoryBulkDelete(ids: $ids) {
    count
    errors {
      field
      code
      message
    }
  }
}
"""

PRODUCT_TYPE_BULK_DELETE_MUTATION = """
mutation ProductTypeBulkDelete($ids: [ID!]!) {
  productTypeBulkDelete(ids: $ids) {
    count
    errors {
      field
      code
      message
    }
  }
}
"""

PRODUCT_TYPE_CREATE_MUTATION = """
mutation ProductTypeCreate($input: ProductTypeInput!) {
  productTypeCreate(input: $input) {
    productType {
      id
      name
    }
    errors {
      field
      code
      message
    }
  }
}
"""

CATEGORY_CREATE_MUTATION = """
mutation CategoryCreate($input: CategoryInput!, $parent: ID) {
  categoryCreate(input: $input, parent: $parent) {
    category {
      id
      name
    }
    errors {
      field
      code
      message
    }
  }
}
"""

PRODUCT_CREATE_MUTATION = """
mutation ProductCreate($input: ProductCreateInput!) {
  productCreate(input: $input) {
    product {
      id
    }
    errors {
      field
      code
      message
    }
  }
}
"""

PRODUCT_VARIANT_CREATE_MUTATION = """
mutation ProductVariantCreate($input: ProductVariantCreateInput!) {
  productVariantCreate(input: $input) {
    productVariant {
      id
    }
    errors {
      field
      code
      message
    }
  }
}
"""

PRODUCT_CHANNEL_LISTING_UPDATE_MUTATION = """
mutation ProductChannelListingUpdate($id: ID!, $input: ProductChannelListingUpdateInput!) {
  productChannelListingUpdate(id: $id, input: $input) {
    errors {
      field
      code
      message
    }
  }
}
"""

VARIANT_CHANNEL_LISTING_UPDATE_MUTATION = """
mutation ProductVariantChannelListingUpdate($id: ID!, $input: [ProductVariantChannelListingAddInput!]!) {
  productVariantChannelListingUpdate(id: $id, input: $input) {
    errors {
      field
      code
      message
    }
  }
}
"""


# ============================================================================
# CLIENT
# ============================================================================

def join_error_messages(errors, separator="\n"):
    """Aggregate the messages of GraphQL error entries into one string."""
    return separator.join(
        (err.get("message") if isinstance(err, dict) else None) or "GraphQL error"
        for err in errors
    )


class SaleorClient:
    """
    Single entry point for Saleor GraphQL calls.

    Args:
        api_url: GraphQL endpoint URL
        token: App token sent as a Bearer credential
        retry_base_delay: Backoff base in seconds; attempt n waits base * (n + 1)
        max_attempts: Total attempts for transient failures
        timeout: Per-request timeout in seconds
        cancel_event: Optional threading.Event; when set, calls raise SyncCancelled
    """

    def __init__(self, api_url, token, retry_base_delay=2.0, max_attempts=MAX_ATTEMPTS,
                 timeout=30, cancel_event=None):
        self.api_url = api_url
        self.headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        self.retry_base_delay = retry_base_delay
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise SyncCancelled("Sync cancelled by operator")

    def _backoff(self, attempt, reason):
        wait = self.retry_base_delay * (attempt + 1)
        logging.warning(
            f"{reason} (attempt {attempt + 1}/{self.max_attempts}). Waiting {wait:.1f}s before retry..."
        )
        # Event.wait returns True as soon as the event is set
        if self.cancel_event.wait(wait):
            raise SyncCancelled("Sync cancelled by operator during backoff")

    def execute(self, query, variables=None):
        """
        Run a GraphQL query or mutation and return its data section.

        Args:
            query: GraphQL document
            variables: Variables dictionary

        Returns:
            The response "data" dictionary

        Raises:
            requests.exceptions.RequestException: network failure persisted after all attempts
            RateLimitExceeded: rate limiting persisted after all attempts
            RemoteBusinessError: response carried GraphQL errors
            ProtocolError: response had no data or was not JSON
            SyncCancelled: cancel_event was set
        """
        payload = {"query": query, "variables": variables or {}}

        for attempt in range(self.max_attempts):
            self._check_cancelled()
            last_attempt = attempt == self.max_attempts - 1

            try:
                response = requests.post(
                    self.api_url,
                    json=payload,
                    headers=self.headers,
                    timeout=self.timeout
                )
            except RETRYABLE_NETWORK_ERRORS as e:
                if last_attempt:
                    logging.error(f"Network error talking to Saleor after {self.max_attempts} attempts: {e}")
                    raise
                self._backoff(attempt, f"Network error talking to Saleor: {e}")
                continue

            try:
                body = response.json()
            except ValueError:
                body = None

            if self._is_rate_limited(response, body):
                if last_attempt:
                    raise RateLimitExceeded(
                        f"Saleor API kept rate limiting after {self.max_attempts} attempts: "
                        f"{json.dumps(body) if body is not None else response.status_code}"
                    )
                self._backoff(attempt, "Saleor API rate limit hit")
                continue

            return self._extract_data(response, body)

    @staticmethod
    def _is_rate_limited(response, body):
        if getattr(response, "status_code", None) == 429:
            return True
        return isinstance(body, dict) and body.get("type") == RATE_LIMIT_MARKER

    @staticmethod
    def _extract_data(response, body):
        if not isinstance(body, dict):
            raise ProtocolError(
                f"Non-JSON response from GraphQL (HTTP {getattr(response, 'status_code', '?')})"
            )

        errors = body.get("errors")
        if errors:
            raise RemoteBusinessError(join_error_messages(errors), errors)

        if body.get("data") is None:
            raise ProtocolError(f"Empty GraphQL response: {json.dumps(body, indent=2)}")

        return body["data"]


# ============================================================================
# RESPONSE HELPERS
# ============================================================================

def check_payload(payload, context):
    """
    Validate a mutation payload of the form {result, errors[]}.

    Args:
        payload: Mutation payload from the data section (may be None)
        context: Human-readable description used in error messages

    Returns:
        The payload, when it carries no errors
    """
    if not payload:
        raise RemoteBusinessError(f"{context}: empty mutation payload")

    errors = payload.get("errors") or []
    if errors:
        raise RemoteBusinessError(f"{context}: {join_error_messages(errors, ', ')}", errors)

    return payload


def paginate_ids(client, query, connection_key, variables=None):
    """
    Collect node ids across all pages of a cursor-paginated connection.

    Args:
        client: SaleorClient
        query: GraphQL document accepting an $after cursor
        connection_key: Name of the connection field in the data section
        variables: Extra variables passed with every page

    Returns:
        List of ids in listing order
    """
    return [node["id"] for node in paginate_nodes(client, query, connection_key, variables)]


def paginate_nodes(client, query, connection_key, variables=None):
    """Collect nodes across all pages of a cursor-paginated connection."""
    nodes = []
    has_next_page = True
    after = None
    page_count = 0

    while has_next_page:
        page_variables = dict(variables or {})
        page_variables["after"] = after
        data = client.execute(query, page_variables)

        connection = data.get(connection_key)
        if connection is None:
            raise ProtocolError(f"Unexpected response while listing {connection_key}: {data}")

        for edge in connection.get("edges", []):
            nodes.append(edge["node"])

        page_info = connection.get("pageInfo") or {}
        has_next_page = bool(page_info.get("hasNextPage"))
        after = page_info.get("endCursor")
        page_count += 1

    logging.debug(f"Listed {len(nodes)} {connection_key} from {page_count} page(s)")
    return nodes
