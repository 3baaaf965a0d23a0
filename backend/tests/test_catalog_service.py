"""
Catalog sync tests.

Verifies:
- Item API rows are normalized into a snapshot (externalId or jan_code)
- Products are upserted last-write-wins on name and price
- Upstream failures surface as UpstreamUnavailableError with nothing written
"""

import logging

import httpx
import pytest

from orderpay.models import Product
from orderpay.services import catalog_service
from orderpay.services.catalog_service import (
    ItemApiClient,
    UpstreamUnavailableError,
    build_snapshot,
    chunked,
)


class TestBuildSnapshot:

    def test_accepts_external_id_and_jan_code(self):
        snapshot = build_snapshot([
            {"externalId": "P1", "name": "Tea", "price": 500},
            {"jan_code": "4901234567890", "name": "Rice Ball", "price": 150},
        ])

        assert len(snapshot) == 2
        assert snapshot.find("P1", 500).name == "Tea"
        assert snapshot.find("4901234567890", 150).name == "Rice Ball"

    def test_find_requires_matching_price(self):
        snapshot = build_snapshot([{"externalId": "P1", "name": "Tea", "price": 500}])

        assert snapshot.find("P1", 400) is None
        assert snapshot.find("P2", 500) is None

    def test_later_duplicate_replaces_earlier(self):
        snapshot = build_snapshot([
            {"externalId": "P1", "name": "Tea", "price": 500},
            {"externalId": "P1", "name": "Green Tea", "price": 550},
        ])

        assert len(snapshot) == 1
        assert snapshot.find("P1", 500) is None
        assert snapshot.find("P1", 550).name == "Green Tea"

    @pytest.mark.parametrize(
        "row",
        [
            {"name": "Tea", "price": 500},
            {"externalId": "P1", "price": 500},
            {"externalId": "P1", "name": "Tea", "price": -1},
            {"externalId": "P1", "name": "Tea", "price": 5.5},
            {"externalId": "P1", "name": "Tea", "price": True},
            "not-an-object",
        ],
    )
    def test_malformed_rows_rejected(self, row):
        with pytest.raises(UpstreamUnavailableError):
            build_snapshot([row])


def test_chunked_splits_into_batches():
    batches = list(chunked(range(25), 10))
    assert [len(b) for b in batches] == [10, 10, 5]


class TestSyncCatalog:

    def test_upserts_every_item(self, db_session, catalog):
        catalog.items = [
            {"externalId": f"P{i}", "name": f"Item {i}", "price": 100 + i}
            for i in range(25)
        ]

        snapshot = catalog_service.sync_catalog()

        assert len(snapshot) == 25
        assert db_session.query(Product).count() == 25
        assert db_session.get(Product, "P7").price == 107

    def test_overwrites_name_and_price(self, db_session, catalog):
        catalog.set_items(("P1", "Tea", 500))
        catalog_service.sync_catalog()

        catalog.set_items(("P1", "Green Tea", 600))
        catalog_service.sync_catalog()

        db_session.expire_all()
        product = db_session.get(Product, "P1")
        assert product.name == "Green Tea"
        assert product.price == 600
        assert db_session.query(Product).count() == 1

    def test_upstream_failure_writes_nothing(self, db_session, catalog):
        catalog.set_items(("P1", "Tea", 500))
        catalog.error = UpstreamUnavailableError("Item API timed out")

        with pytest.raises(UpstreamUnavailableError):
            catalog_service.sync_catalog()

        assert db_session.query(Product).count() == 0

    def test_conflicting_names_reported_as_upstream_error(self, db_session, catalog):
        catalog.set_items(("P1", "Tea", 500), ("P2", "Tea", 600))

        with pytest.raises(UpstreamUnavailableError):
            catalog_service.sync_catalog()

    def test_swapped_names_refused_and_logged(self, db_session, catalog, caplog):
        catalog.set_items(("P1", "Tea", 500), ("P2", "Coffee", 300))
        catalog_service.sync_catalog()

        catalog.set_items(("P1", "Coffee", 300), ("P2", "Tea", 500))
        with caplog.at_level(logging.WARNING):
            with pytest.raises(UpstreamUnavailableError):
                catalog_service.sync_catalog()

        assert "P1 vs P2" in caplog.text
        assert "P2 vs P1" in caplog.text
        db_session.expire_all()
        assert db_session.get(Product, "P1").name == "Tea"
        assert db_session.get(Product, "P2").name == "Coffee"


class TestItemApiClient:

    def _client(self, handler):
        return ItemApiClient("https://items.example/api/items", timeout=1.0, transport=httpx.MockTransport(handler))

    def test_returns_payload(self):
        rows = [{"jan_code": "P1", "name": "Tea", "price": 500}]
        client = self._client(lambda request: httpx.Response(200, json=rows))

        assert client.fetch_items() == rows

    def test_http_error_status(self):
        client = self._client(lambda request: httpx.Response(503))

        with pytest.raises(UpstreamUnavailableError, match="503"):
            client.fetch_items()

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamUnavailableError, match="timed out"):
            self._client(handler).fetch_items()

    def test_invalid_json(self):
        client = self._client(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(UpstreamUnavailableError, match="invalid JSON"):
            client.fetch_items()

    def test_non_array_payload(self):
        client = self._client(lambda request: httpx.Response(200, json={"items": []}))

        with pytest.raises(UpstreamUnavailableError, match="array"):
            client.fetch_items()

    def test_missing_url(self):
        with pytest.raises(UpstreamUnavailableError, match="not configured"):
            ItemApiClient("").fetch_items()
