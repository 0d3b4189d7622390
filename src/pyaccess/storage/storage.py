from abc import ABC, abstractmethod
from typing import TypeVar
from contextlib import asynccontextmanager, AbstractAsyncContextManager
from typing import AsyncGenerator, Any, Union, Type, Optional
from ..models import Model

T = TypeVar("T", bound=Model)


class StorageError(Exception):
    def __init__(self, msg: str = None, *args):
        message = f"Storage error: {msg}" if msg else "Storage error"
        super().__init__(message, *args)


class DuplicateEntry(StorageError):
    pass


class MissingField(StorageError):
    pass


class TableNotFound(StorageError):
    pass


class StorageSession(ABC):
    # lifecycle first: the `list` method below shadows the builtin inside the class body
    @abstractmethod
    async def begin(self): ...
    @abstractmethod
    async def commit(self): ...
    @abstractmethod
    async def rollback(self): ...
    @abstractmethod
    async def connect(self) -> "StorageSession": ...
    @abstractmethod
    async def close(self): ...
    @abstractmethod
    async def init_schema(self, schema: Type[Model]): ...
    @abstractmethod
    async def init_index(self, table: str, indexes: list[str]): ...

    @abstractmethod
    async def create(self, model: T) -> T: ...
    @abstractmethod
    async def update(
        self, model: Union[T, Type[T]], filters: dict, updates: dict
    ) -> Optional[T]: ...
    @abstractmethod
    async def delete(self, model: Union[T, Type[T]], filters: dict) -> int: ...
    @abstractmethod
    async def get(
        self, model: Union[T, Type[T]], filters: Optional[dict] = None
    ) -> Optional[T]: ...
    @abstractmethod
    async def list(
        self,
        model: Union[T, Type[T]],
        limit: int = 25,
        after_id: Optional[int] = None,
        filters: Optional[dict] = None,
        order_by: Optional[list[str]] = None,
    ) -> list[T]: ...
    @abstractmethod
    async def count(self, model: Union[T, Type[T]], filters: Optional[dict] = None) -> int: ...


# every call to session() opens its own connection, so independent callers never
# share a transaction
class Storage(ABC):
    def __init__(self, conn_uri: str, debug=False):
        self.conn_uri = conn_uri
        self._debug = debug

    # returning the context manager type keeps `async with storage.session()` typed
    @abstractmethod
    def session(self) -> AbstractAsyncContextManager[StorageSession]:
        pass

    @asynccontextmanager
    async def begin(self) -> AsyncGenerator[StorageSession, Any]:
        async with self.session() as session:
            try:
                await session.begin()
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @staticmethod
    def get_model_class(model: object) -> Type[Model]:
        if isinstance(model, Model):
            return model.__class__
        elif isinstance(model, type) and issubclass(model, Model):
            return model

        raise TypeError("Invalid model type")
