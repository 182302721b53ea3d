from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from bookscan.domain.models import BibliographicRecord, DataSource
from bookscan.domain.ports import CatalogStoreError
from bookscan.repositories.catalog_repository import InMemoryCatalogRepository

ISBN = "9784003101018"


def _ingest(client: TestClient, identifier: str = ISBN, **extra: str) -> dict:
    response = client.post("/api/v1/books/", json={"identifier": identifier, **extra})
    assert response.status_code == 201, response.text
    return response.json()


def test_manual_ingest_back_fills_from_all_sources(
    client: TestClient, mock_adapter_registry: dict[DataSource, AsyncMock]
) -> None:
    mock_adapter_registry[DataSource.OPENBD].lookup.return_value = BibliographicRecord(
        identifier=ISBN, title="こころ", source=DataSource.OPENBD
    )
    mock_adapter_registry[DataSource.NDL].lookup.return_value = BibliographicRecord(
        identifier=ISBN, authors=["夏目漱石"], publisher="岩波書店", source=DataSource.NDL
    )

    entry = _ingest(client, "978-4-00-310101-8", shelf_label="A-1")

    assert entry["identifier"] == ISBN
    assert entry["title"] == "こころ"
    assert entry["authors"] == ["夏目漱石"]
    assert entry["publisher"] == "岩波書店"
    assert entry["shelf_label"] == "A-1"
    assert entry["is_duplicate_on_ingest"] is False


def test_manual_ingest_rejects_invalid_identifier(client: TestClient) -> None:
    response = client.post("/api/v1/books/", json={"identifier": "4901234567894"})
    assert response.status_code == 422


def test_manual_ingest_of_known_book_is_duplicate(client: TestClient) -> None:
    _ingest(client, shelf_label="A-1")

    second = _ingest(client)

    assert second["is_duplicate_on_ingest"] is True
    assert second["shelf_label"] == "A-1"


def test_manual_ingest_marks_identifier_seen_in_active_session(client: TestClient) -> None:
    client.post("/api/v1/scan-session")
    _ingest(client)

    ticket = client.post("/api/v1/scans", json={"raw_text": ISBN}).json()

    assert ticket["is_duplicate"] is True


def test_get_book(client: TestClient) -> None:
    _ingest(client)

    response = client.get(f"/api/v1/books/{ISBN}")
    assert response.status_code == 200
    assert response.json()["identifier"] == ISBN

    assert client.get("/api/v1/books/9790000000001").status_code == 404


def test_list_and_search_books(
    client: TestClient, mock_adapter_registry: dict[DataSource, AsyncMock]
) -> None:
    mock_adapter_registry[DataSource.OPENBD].lookup.side_effect = (
        lambda identifier: BibliographicRecord(
            identifier=identifier,
            title="Kokoro" if identifier == ISBN else "Norwegian Wood",
            source=DataSource.OPENBD,
        )
    )
    _ingest(client)
    _ingest(client, "9784062748681")

    assert len(client.get("/api/v1/books/").json()) == 2
    assert len(client.get("/api/v1/books/?limit=1").json()) == 1

    found = client.get("/api/v1/books/?q=kokoro").json()
    assert [b["identifier"] for b in found] == [ISBN]


def test_update_book(client: TestClient) -> None:
    _ingest(client)

    response = client.patch(f"/api/v1/books/{ISBN}", json={"location_label": "Wohnzimmer"})

    assert response.status_code == 200
    assert response.json()["location_label"] == "Wohnzimmer"
    assert client.get(f"/api/v1/books/{ISBN}").json()["location_label"] == "Wohnzimmer"


def test_update_unknown_book(client: TestClient) -> None:
    response = client.patch("/api/v1/books/9790000000001", json={"shelf_label": "X"})
    assert response.status_code == 404


def test_delete_book(client: TestClient) -> None:
    _ingest(client)

    assert client.delete(f"/api/v1/books/{ISBN}").status_code == 204
    assert client.get(f"/api/v1/books/{ISBN}").status_code == 404
    assert client.delete(f"/api/v1/books/{ISBN}").status_code == 404


def test_store_failure_maps_to_503(
    client: TestClient, repository: InMemoryCatalogRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        repository, "upsert", AsyncMock(side_effect=CatalogStoreError("upsert", "locked"))
    )

    response = client.post("/api/v1/books/", json={"identifier": ISBN})

    assert response.status_code == 503
    assert client.get(f"/api/v1/books/{ISBN}").status_code == 404


def test_manual_ingest_store_failure_in_session_keeps_next_scan_new(
    client: TestClient, repository: InMemoryCatalogRepository, monkeypatch: pytest.MonkeyPatch
) -> None:
    client.post("/api/v1/scan-session")
    monkeypatch.setattr(
        repository, "upsert", AsyncMock(side_effect=CatalogStoreError("upsert", "locked"))
    )

    assert client.post("/api/v1/books/", json={"identifier": ISBN}).status_code == 503

    ticket = client.post("/api/v1/scans", json={"raw_text": ISBN}).json()
    assert ticket["is_duplicate"] is False
