from __future__ import annotations

import pytest

from services.ingestion.storage import BlobNotFoundError, LocalStorage, MemoryStorage


def test_memory_storage_round_trip():
    store = MemoryStorage()
    obj = store.put_bytes(blob_id="abc", blob=b"%PDF-1.4")
    assert obj.uri == "blob:abc/document.pdf"
    assert store.get_bytes(uri=obj.uri) == b"%PDF-1.4"
    assert len(store) == 1

    store.discard(uri=obj.uri)
    assert len(store) == 0
    with pytest.raises(BlobNotFoundError):
        store.get_bytes(uri=obj.uri)
    # discarding twice is harmless
    store.discard(uri=obj.uri)


def test_memory_storage_keeps_named_blobs_apart():
    store = MemoryStorage()
    pdf = store.put_bytes(blob_id="abc", blob=b"pdf")
    sig = store.put_bytes(blob_id="abc", blob=b"png", name="signature.png")
    assert pdf.uri != sig.uri
    assert store.get_bytes(uri=sig.uri) == b"png"


def test_local_storage_writes_files(tmp_path):
    store = LocalStorage(root_dir=str(tmp_path))
    obj = store.put_bytes(blob_id="abc", blob=b"%PDF-1.4")
    assert obj.uri.startswith("file://")
    assert (tmp_path / "abc" / "document.pdf").read_bytes() == b"%PDF-1.4"
    assert store.get_bytes(uri=obj.uri) == b"%PDF-1.4"
    assert not list(tmp_path.rglob("*.tmp"))


def test_local_storage_discard_removes_empty_blob_dir(tmp_path):
    store = LocalStorage(root_dir=str(tmp_path))
    obj = store.put_bytes(blob_id="abc", blob=b"x")
    store.discard(uri=obj.uri)
    assert not (tmp_path / "abc").exists()
    assert tmp_path.exists()
    with pytest.raises(BlobNotFoundError):
        store.get_bytes(uri=obj.uri)


def test_local_storage_rejects_foreign_uris(tmp_path):
    store = LocalStorage(root_dir=str(tmp_path))
    with pytest.raises(ValueError):
        store.get_bytes(uri="blob:abc/document.pdf")
