# src/docquery/base/interfaces.py

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

Document = Dict[str, Any]
Options = Mapping[str, Any]


class Collection(ABC):
    """
    The storage collaborator a Query executes against.

    Each method receives the finalized filter (and update or field where the
    operation needs one) plus the query's option mapping. The projection, if
    any, is passed as ``options["projection"]``. Implementations perform the
    actual I/O; errors they raise reach the caller unchanged.
    """

    @property
    def name(self) -> Optional[str]:
        """Collection name used in trace summaries, if known."""
        return None

    @abstractmethod
    async def find(self, filter: Document, options: Options) -> List[Document]:
        pass

    @abstractmethod
    def find_cursor(self, filter: Document, options: Options) -> Any:
        """Returns the driver cursor for ``filter`` without consuming it."""
        pass

    @abstractmethod
    async def find_one(self, filter: Document, options: Options) -> Optional[Document]:
        pass

    @abstractmethod
    async def count(self, filter: Document, options: Options) -> int:
        pass

    @abstractmethod
    async def distinct(self, field: str, filter: Document, options: Options) -> List[Any]:
        pass

    @abstractmethod
    async def update_one(self, filter: Document, update: Document, options: Options) -> Any:
        pass

    @abstractmethod
    async def update_many(self, filter: Document, update: Document, options: Options) -> Any:
        pass

    @abstractmethod
    async def replace_one(self, filter: Document, replacement: Document, options: Options) -> Any:
        pass

    @abstractmethod
    async def delete_one(self, filter: Document, options: Options) -> Any:
        pass

    @abstractmethod
    async def delete_many(self, filter: Document, options: Options) -> Any:
        pass

    @abstractmethod
    async def find_one_and_update(
        self, filter: Document, update: Document, options: Options
    ) -> Optional[Document]:
        pass

    @abstractmethod
    async def find_one_and_delete(self, filter: Document, options: Options) -> Optional[Document]:
        pass
