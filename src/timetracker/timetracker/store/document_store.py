from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

Document = dict[str, Any]


class DocumentStore(Protocol):
    """Generic document store used by the session and attendance repositories.

    Documents are flat JSON objects; the store assigns the id and returns it
    under the ``"id"`` key on reads. ``lock_key`` gives an atomic insert-if-absent:
    at most one document per (collection, lock_key) may hold a given key.
    """

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    async def create(self, collection: str, document: Mapping[str, Any], *, lock_key: Optional[str] = None) -> str:
        """Insert a document and return its id.

        Raises DuplicateDocumentError when ``lock_key`` is already held.
        """

        raise NotImplementedError

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        release_lock: bool = False,
    ) -> bool:
        raise NotImplementedError

    async def query(self, collection: str, filters: Mapping[str, Any]) -> list[Document]:
        """Equality match on top-level fields; a list/tuple value means "in".

        Results come back in creation order.
        """

        raise NotImplementedError
