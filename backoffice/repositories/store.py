"""Document store backends.

Repositories talk to a ``DocumentStore``: named collections of JSON-ready
dicts.  ``MemoryDocumentStore`` keeps everything in process memory and is
what tests use; ``JsonlDocumentStore`` adds one JSONL file per collection
under a data directory so records survive a restart.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterable

from backoffice.errors import DuplicateKeyError, RecordNotFound

log = logging.getLogger("backoffice.repositories.store")

Document = dict[str, Any]
Predicate = Callable[[Document], bool]


class DocumentStore(ABC):
    """Abstract document database.

    Documents go in and come out as plain dicts; callers never receive a
    reference to the stored object.
    """

    @abstractmethod
    async def insert(
        self, collection: str, doc: Document, unique: Iterable[str] = ()
    ) -> Document:
        """Insert a document.

        Args:
            collection: Target collection name.
            doc: JSON-ready document.
            unique: Field names that must not repeat within the collection.

        Raises:
            DuplicateKeyError: a ``unique`` field value is already taken.
        """

    @abstractmethod
    async def find_one(self, collection: str, **filters: Any) -> Document | None:
        """Return the first document whose fields equal ``filters``."""

    @abstractmethod
    async def find(
        self,
        collection: str,
        predicate: Predicate | None = None,
        *,
        sort_key: Callable[[Document], Any] | None = None,
        reverse: bool = False,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        """Return matching documents, optionally sorted and paginated."""

    @abstractmethod
    async def replace(self, collection: str, key_field: str, doc: Document) -> Document:
        """Replace the document whose ``key_field`` equals ``doc[key_field]``.

        Raises:
            RecordNotFound: no document has that key.
        """

    @abstractmethod
    async def count(self, collection: str, predicate: Predicate | None = None) -> int:
        """Count matching documents."""

    @abstractmethod
    async def delete(self, collection: str, predicate: Predicate) -> int:
        """Remove matching documents and return how many were removed."""


class MemoryDocumentStore(DocumentStore):
    """In-process store: a dict of lists.

    Writes go through ``_commit``: the new collection contents are handed to
    ``_flush`` first and only become visible once it returns, so a failed
    write leaves nothing behind.
    """

    def __init__(self) -> None:
        self._collections: dict[str, list[Document]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _docs(self, collection: str) -> list[Document]:
        return self._collections.setdefault(collection, [])

    def _lock(self, collection: str) -> asyncio.Lock:
        return self._locks.setdefault(collection, asyncio.Lock())

    async def insert(
        self, collection: str, doc: Document, unique: Iterable[str] = ()
    ) -> Document:
        async with self._lock(collection):
            docs = self._docs(collection)
            for key in unique:
                value = doc.get(key)
                if any(d.get(key) == value for d in docs):
                    raise DuplicateKeyError(f"{collection}.{key} already exists: {value}")
            new = copy.deepcopy(doc)
            await self._commit(collection, [*docs, new], appended=[new])
        return copy.deepcopy(doc)

    async def find_one(self, collection: str, **filters: Any) -> Document | None:
        for doc in self._docs(collection):
            if all(doc.get(k) == v for k, v in filters.items()):
                return copy.deepcopy(doc)
        return None

    async def find(
        self,
        collection: str,
        predicate: Predicate | None = None,
        *,
        sort_key: Callable[[Document], Any] | None = None,
        reverse: bool = False,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Document]:
        docs = [d for d in self._docs(collection) if predicate is None or predicate(d)]
        if sort_key is not None:
            docs.sort(key=sort_key, reverse=reverse)
        end = None if limit is None else skip + limit
        return [copy.deepcopy(d) for d in docs[skip:end]]

    async def replace(self, collection: str, key_field: str, doc: Document) -> Document:
        async with self._lock(collection):
            docs = self._docs(collection)
            for i, existing in enumerate(docs):
                if existing.get(key_field) == doc.get(key_field):
                    updated = list(docs)
                    updated[i] = copy.deepcopy(doc)
                    await self._commit(collection, updated)
                    return copy.deepcopy(doc)
        raise RecordNotFound(f"{collection}: no document with {key_field}={doc.get(key_field)}")

    async def count(self, collection: str, predicate: Predicate | None = None) -> int:
        return sum(1 for d in self._docs(collection) if predicate is None or predicate(d))

    async def delete(self, collection: str, predicate: Predicate) -> int:
        async with self._lock(collection):
            docs = self._docs(collection)
            kept = [d for d in docs if not predicate(d)]
            removed = len(docs) - len(kept)
            if removed:
                await self._commit(collection, kept)
        return removed

    async def _commit(
        self,
        collection: str,
        docs: list[Document],
        appended: list[Document] | None = None,
    ) -> None:
        await self._flush(collection, docs, appended)
        self._collections[collection] = docs

    async def _flush(
        self,
        collection: str,
        docs: list[Document],
        appended: list[Document] | None = None,
    ) -> None:
        """Persist the new contents of ``collection``.

        ``appended`` is set when the change only adds ``appended`` at the
        end, so a backend may write just those.  Raising aborts the write.
        """


class JsonlDocumentStore(MemoryDocumentStore):
    """Memory store mirrored to ``<data_dir>/<collection>.jsonl``.

    Inserts append one line; replacements and deletes rewrite the file
    through a temporary file.
    """

    def __init__(self, data_dir: str | Path) -> None:
        super().__init__()
        self._dir = Path(data_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        for path in sorted(self._dir.glob("*.jsonl")):
            self._collections[path.stem] = _read_jsonl(path)
            log.info("Loaded %d documents from %s", len(self._collections[path.stem]), path)

    async def _flush(
        self,
        collection: str,
        docs: list[Document],
        appended: list[Document] | None = None,
    ) -> None:
        path = self._dir / f"{collection}.jsonl"
        if appended is not None:
            write = partial(_append_jsonl, path, copy.deepcopy(appended))
        else:
            write = partial(_write_jsonl, path, copy.deepcopy(docs))
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, write)


def _read_jsonl(path: Path) -> list[Document]:
    docs = []
    for number, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            docs.append(json.loads(line))
        except ValueError:
            # a torn append from a crash mid-write
            log.warning("Skipping unreadable line %d in %s", number, path)
    return docs


def _dumps(docs: list[Document]) -> str:
    return "".join(json.dumps(d, ensure_ascii=False) + "\n" for d in docs)


def _write_jsonl(path: Path, docs: list[Document]) -> None:
    tmp = path.with_suffix(".jsonl.tmp")
    tmp.write_text(_dumps(docs), encoding="utf-8")
    tmp.replace(path)


def _append_jsonl(path: Path, docs: list[Document]) -> None:
    size = path.stat().st_size if path.exists() else 0
    try:
        with path.open("a", encoding="utf-8") as fh:
            fh.write(_dumps(docs))
    except OSError:
        # drop a partial line so the next append starts clean
        if path.exists():
            with path.open("r+b") as fh:
                fh.truncate(size)
        raise


@dataclass
class Page:
    """One page of a listing."""

    total: int
    items: list[Any]
    page: int
    total_pages: int

    @classmethod
    def build(cls, items: list[Any], total: int, skip: int, limit: int) -> "Page":
        limit = max(limit, 1)
        return cls(
            total=total,
            items=items,
            page=skip // limit + 1,
            total_pages=math.ceil(total / limit),
        )
