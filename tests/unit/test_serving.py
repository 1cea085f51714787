"""Unit tests for the serving layer."""

from collections.abc import Iterator
from unittest.mock import AsyncMock

import pytest
from conftest import FakeEmbedder, vector_for
from fastapi.testclient import TestClient

from kb_ingest.exceptions import ConflictError, DocumentStoreError
from kb_ingest.ingestion.pipeline import IngestionPipeline
from kb_ingest.ingestion.reindexer import Reindexer
from kb_ingest.serving.app import app
from kb_ingest.serving.dependencies import get_pipeline, get_reindexer, get_store
from kb_ingest.store.base import DocumentStore


@pytest.fixture()
def client(store, test_settings) -> Iterator[TestClient]:
    embedder = FakeEmbedder()
    pipeline = IngestionPipeline(store, embedder, config=test_settings)
    reindexer = Reindexer(store, embedder, config=test_settings)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_reindexer] = lambda: reindexer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _upload(client: TestClient, *files: tuple[str, bytes, str], folder_id: str = "F1"):  # noqa: ANN202
    return client.post(
        "/documents/batch",
        files=[("files", f) for f in files],
        data={"folder_id": folder_id},
    )


def test_health_endpoint(client: TestClient) -> None:
    """GET /health should return 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_batch_upload_reports_partial_success(client: TestClient) -> None:
    response = _upload(
        client,
        ("short.txt", b"Hello world.", "text/plain"),
        ("bad.xyz", b"\x00\x01", "application/octet-stream"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["failed_count"] == 1
    assert body["failed"][0]["name"] == "bad.xyz"
    [doc] = body["succeeded"]
    assert doc["title"] == "short"
    assert doc["status"] == "indexed"
    assert doc["chunk_count"] == 1
    assert doc["folder_id"] == "F1"
    assert doc["embedding"] == vector_for("Hello world.")


def test_chunks_and_document_lookup(client: TestClient) -> None:
    doc_id = _upload(client, ("pets.md", b"Cats nap.\n\nDogs run.", "text/markdown")).json()[
        "succeeded"
    ][0]["id"]

    assert client.get(f"/documents/{doc_id}").json()["id"] == doc_id
    chunks = client.get(f"/documents/{doc_id}/chunks").json()
    assert [c["chunk_index"] for c in chunks] == list(range(len(chunks)))
    assert "".join(c["chunk_text"] for c in chunks).replace("\n", "") == "Cats nap.Dogs run."


def test_list_documents_by_folder(client: TestClient) -> None:
    _upload(client, ("a.txt", b"Alpha.", "text/plain"), folder_id="F1")
    _upload(client, ("b.txt", b"Beta.", "text/plain"), folder_id="F2")

    assert [d["title"] for d in client.get("/documents", params={"folder_id": "F2"}).json()] == ["b"]
    assert len(client.get("/documents").json()) == 2


def test_unknown_document_is_404(client: TestClient) -> None:
    for response in (
        client.get("/documents/nope"),
        client.get("/documents/nope/chunks"),
        client.post("/documents/nope/reindex"),
        client.delete("/documents/nope"),
    ):
        assert response.status_code == 404
        assert "nope" in response.json()["detail"]


def test_reindex_document(client: TestClient) -> None:
    doc_id = _upload(client, ("a.txt", b"Alpha.", "text/plain")).json()["succeeded"][0]["id"]

    response = client.post(f"/documents/{doc_id}/reindex")

    assert response.status_code == 200
    assert response.json()["status"] == "indexed"
    assert response.json()["chunk_count"] == 1


def test_reindex_in_progress_is_409(client: TestClient) -> None:
    busy = AsyncMock(spec=Reindexer)
    busy.reindex.side_effect = ConflictError("Document 'abc' is already being reindexed")
    app.dependency_overrides[get_reindexer] = lambda: busy

    response = client.post("/documents/abc/reindex")

    assert response.status_code == 409
    assert "already being reindexed" in response.json()["detail"]


def test_store_outage_is_503(client: TestClient) -> None:
    broken = AsyncMock(spec=DocumentStore)
    broken.list_documents.side_effect = DocumentStoreError("connection refused")
    app.dependency_overrides[get_store] = lambda: broken

    response = client.get("/documents")

    assert response.status_code == 503
    assert response.json() == {"detail": "Document store unavailable"}


def test_delete_document(client: TestClient) -> None:
    doc_id = _upload(client, ("a.txt", b"Alpha.", "text/plain")).json()["succeeded"][0]["id"]

    assert client.delete(f"/documents/{doc_id}").status_code == 204
    assert client.get(f"/documents/{doc_id}").status_code == 404
    assert client.get(f"/documents/{doc_id}/chunks").status_code == 404


def test_stats(client: TestClient) -> None:
    _upload(
        client,
        ("a.txt", b"Alpha.", "text/plain"),
        ("b.txt", b"Beta.", "text/plain"),
    )

    body = client.get("/stats").json()

    assert body["total_documents"] == 2
    assert body["indexed_documents"] == 2
    assert body["total_chunks"] == 2
    assert body["storage_used"] == "0 KB"
