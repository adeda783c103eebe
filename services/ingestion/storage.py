from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Protocol
from urllib.parse import urlparse, unquote
from urllib.request import url2pathname


class BlobNotFoundError(KeyError):
    pass


@dataclass(frozen=True)
class StoredObject:
    uri: str


class Storage(Protocol):
    """Session blob store for rendered PDFs; handles stay valid until discarded."""

    def put_bytes(self, *, blob_id: str, blob: bytes, name: str = "document.pdf") -> StoredObject: ...
    def get_bytes(self, *, uri: str) -> bytes: ...
    def discard(self, *, uri: str) -> None: ...


class MemoryStorage:
    SCHEME = "blob"

    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}

    def put_bytes(self, *, blob_id: str, blob: bytes, name: str = "document.pdf") -> StoredObject:
        uri = f"{self.SCHEME}:{blob_id}/{name}"
        self._blobs[uri] = bytes(blob)
        return StoredObject(uri=uri)

    def get_bytes(self, *, uri: str) -> bytes:
        try:
            return self._blobs[uri]
        except KeyError:
            raise BlobNotFoundError(uri) from None

    def discard(self, *, uri: str) -> None:
        self._blobs.pop(uri, None)

    def __len__(self) -> int:
        return len(self._blobs)


class LocalStorage:
    def __init__(self, root_dir: str) -> None:
        self.root = Path(root_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def _blob_dir(self, blob_id: str) -> Path:
        return self.root / blob_id

    def _path_from_uri(self, uri: str) -> Path:
        u = urlparse(uri)
        if u.scheme != "file":
            raise ValueError(f"unsupported uri scheme: {u.scheme}")
        path = url2pathname(unquote(u.path))
        if len(path) >= 3 and (path[0] in ("\\", "/")) and path[2] == ":":
            path = path[1:]
        if u.netloc:
            path = f"\\\\{u.netloc}{path}"
        return Path(path)

    def put_bytes(self, *, blob_id: str, blob: bytes, name: str = "document.pdf") -> StoredObject:
        out = self._blob_dir(blob_id) / name
        out.parent.mkdir(parents=True, exist_ok=True)

        tmp = out.with_suffix(out.suffix + ".tmp")
        tmp.write_bytes(blob)
        tmp.replace(out)  # atomic on same filesystem

        return StoredObject(uri=out.resolve().as_uri())

    def get_bytes(self, *, uri: str) -> bytes:
        p = self._path_from_uri(uri)
        if not p.exists():
            raise BlobNotFoundError(uri)
        return p.read_bytes()

    def discard(self, *, uri: str) -> None:
        p = self._path_from_uri(uri)
        p.unlink(missing_ok=True)
        parent = p.parent
        if parent != self.root and parent.exists() and not any(parent.iterdir()):
            parent.rmdir()
