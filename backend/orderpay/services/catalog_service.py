# Overview: Service-layer operations for the product catalog; fetches the external item list and upserts it locally.

"""
Catalog Sync Service

WHY: The external item API is the source of truth for product names and
prices. Every order re-reads it and validates against that exact read
(the snapshot), so a price changed upstream a moment ago cannot be used
to tamper with an order.

DESIGN:
- fetch -> snapshot -> upsert in batches of UPSERT_BATCH_SIZE
- upsert is last-write-wins on name and price, keyed by external id
- any upstream failure raises UpstreamUnavailableError before a single
  order row is written
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol

import httpx
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from .concurrency import run_with_retry


class CatalogError(Exception):
    """Raised for catalog sync errors."""
    pass


class UpstreamUnavailableError(CatalogError):
    """The item API could not be reached or returned an unusable payload."""
    pass


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    price: int


@dataclass(frozen=True)
class CatalogSnapshot:
    """Product id/name/price triples returned by a single sync call."""
    items: tuple[CatalogItem, ...]

    def __len__(self) -> int:
        return len(self.items)

    def find(self, product_id: str, price: int) -> CatalogItem | None:
        """Entry matching both id and price, or None."""
        for item in self.items:
            if item.id == product_id and item.price == price:
                return item
        return None


class ItemSource(Protocol):
    def fetch_items(self) -> list[dict]:
        ...


class ItemApiClient:
    """
    HTTP client for the external item API.

    Expects a JSON array of {"jan_code" | "externalId", "name", "price"}.
    """

    def __init__(self, url: str, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def fetch_items(self) -> list[dict]:
        if not self.url:
            raise UpstreamUnavailableError("ITEM_API_URL is not configured")

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(self.url, headers={"Accept": "application/json"})
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError(f"Item API timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailableError(f"Item API returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"Item API request failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailableError("Item API returned invalid JSON") from e

        if not isinstance(payload, list):
            raise UpstreamUnavailableError("Item API payload must be a JSON array")
        return payload


def get_item_source() -> ItemSource:
    """Configured item source (CATALOG_CLIENT override, else the HTTP client)."""
    source = current_app.config.get("CATALOG_CLIENT")
    if source is not None:
        return source
    return ItemApiClient(
        current_app.config.get("ITEM_API_URL", ""),
        timeout=current_app.config.get("ITEM_API_TIMEOUT", 10.0),
    )


def chunked(rows: Iterable, size: int) -> Iterator[list]:
    """Yield consecutive lists of at most `size` rows."""
    batch: list = []
    for row in rows:
        batch.append(row)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def build_snapshot(payload: list[dict]) -> CatalogSnapshot:
    """
    Normalize raw item API rows into a snapshot.

    A later row with the same id replaces an earlier one.

    Raises:
        UpstreamUnavailableError: If any row is malformed
    """
    by_id: dict[str, CatalogItem] = {}
    for raw in payload:
        if not isinstance(raw, dict):
            raise UpstreamUnavailableError("Item API row must be an object")

        product_id = raw.get("externalId", raw.get("jan_code"))
        name = raw.get("name")
        price = raw.get("price")

        if not isinstance(product_id, str) or not product_id.strip():
            raise UpstreamUnavailableError("Item API row is missing its product id")
        if not isinstance(name, str) or not name.strip():
            raise UpstreamUnavailableError(f"Item {product_id} is missing a name")
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            raise UpstreamUnavailableError(f"Item {product_id} has an invalid price")

        product_id = product_id.strip()
        by_id[product_id] = CatalogItem(id=product_id, name=name.strip(), price=price)

    return CatalogSnapshot(items=tuple(by_id.values()))


def _upsert_statement(rows: list[dict]):
    dialect = db.engine.dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise CatalogError(f"Catalog upsert is not supported on {dialect}")

    stmt = insert(Product).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=[Product.id],
        set_={
            "name": stmt.excluded.name,
            "price": stmt.excluded.price,
            "updated_at": db.func.now(),
        },
    )


def _name_conflicts(batch: list[dict]) -> list[tuple[str, str]]:
    """(incoming id, existing id) pairs where a stored product already holds the incoming name."""
    names = {row["name"]: row["id"] for row in batch}
    existing = db.session.query(Product.id, Product.name).filter(Product.name.in_(list(names))).all()
    return [(names[name], pid) for pid, name in existing if names[name] != pid]


def upsert_products(snapshot: CatalogSnapshot) -> int:
    """
    Upsert every snapshot item into products, one statement per batch.

    products.name is unique. If the item source renames products so that
    one id takes a name another stored id still holds (e.g. two names
    swapped in one sync), the batch is refused and the sync fails with
    UpstreamUnavailableError. Orders keep failing with 502 until the item
    source is corrected; the conflicting ids are logged at warning level.

    Returns:
        Number of items written
    """
    batch_size = current_app.config.get("UPSERT_BATCH_SIZE", 10)
    rows = [{"id": i.id, "name": i.name, "price": i.price} for i in snapshot.items]

    for batch in chunked(rows, batch_size):
        def _op(batch=batch):
            db.session.execute(_upsert_statement(batch))
            db.session.commit()
        try:
            run_with_retry(_op)
        except IntegrityError as e:
            db.session.rollback()
            conflicts = _name_conflicts(batch)
            db.session.rollback()
            current_app.logger.warning(
                "Catalog sync refused, product name already held by another id: %s",
                ", ".join(f"{new} vs {old}" for new, old in conflicts) or "unknown",
            )
            raise UpstreamUnavailableError("Item API returned conflicting product names") from e

    return len(rows)


def sync_catalog(source: ItemSource | None = None) -> CatalogSnapshot:
    """
    Fetch the external product list and mirror it into products.

    Returns:
        The snapshot that was fetched, for validating the current order

    Raises:
        UpstreamUnavailableError: If the item API fails (nothing written)
    """
    source = source or get_item_source()
    snapshot = build_snapshot(source.fetch_items())
    written = upsert_products(snapshot)
    current_app.logger.info("Catalog synced: %d items", written)
    return snapshot
