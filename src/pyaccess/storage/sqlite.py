import logging
from .sql import SQLSession
from contextlib import asynccontextmanager
from .storage import (
    Storage,
    StorageError,
    DuplicateEntry,
    MissingField,
    TableNotFound,
)
from ..models import Model
import aiosqlite
from typing import Optional, TypeVar, Type, Union

T = TypeVar("T", bound=Model)

logger = logging.getLogger(__name__)


class SQLiteSession(SQLSession):
    def __init__(self, conn_uri: str):
        self.conn_uri = conn_uri
        self.connection: aiosqlite.Connection = None
        # writes commit on their own unless begin() opened a transaction
        self.in_transaction = False

    def python_to_sqltype(self, py_type):
        # unions map to their first non-None member
        if isinstance(py_type, list):
            main_type = next((t for t in py_type if t != "NoneType"), "TEXT")
            return self.python_to_sqltype(main_type)

        mapping = {
            "str": "TEXT",
            "bool": "INTEGER",
            "int": "INTEGER",
            "float": "REAL",
            "datetime": "TEXT",
            "json": "TEXT",
            "NoneType": "TEXT",
            "auto_increment": "AUTOINCREMENT",
        }
        return mapping.get(py_type, "TEXT")

    async def execute(self, sql: str, *args, force_commit=False):
        logger.debug("sqlite execute: %s", sql)
        async with self.connection.execute(sql, *args) as cursor:
            # commits are otherwise driven by Storage.begin()
            if force_commit:
                await self.connection.commit()
            return cursor.lastrowid

    async def init_index(self, table: str, indexes: list[str]):
        if not indexes:
            return

        for col in indexes:
            index_name = f"{table}_{col}_idx"
            await self.connection.execute(
                f"CREATE INDEX IF NOT EXISTS {index_name} ON {table}({col});"
            )

        await self.connection.commit()

    def _where(
        self, table: Type[Model], filters: Optional[dict], after_id: Optional[int] = None
    ):
        filters = filters or {}
        unknown = set(filters) - table.get_fields()
        if unknown:
            raise ValueError(f"Unknown filter columns: {sorted(unknown)}")
        filters = self.encode(table.get_schema(), filters)
        clauses = [f"{attribute}=?" for attribute in filters]
        values = list(filters.values())
        if after_id is not None:
            clauses.append("id > ?")
            values.append(after_id)
        if not clauses:
            return "", values
        return "WHERE " + " AND ".join(clauses), values

    async def get(
        self, model: Union[T, Type[T]], filters: dict = None
    ) -> Optional[T]:
        if not filters:
            raise ValueError("Filters must be provided for sqlite adapter")
        table = Storage.get_model_class(model)
        where, values = self._where(table, filters)
        select = f"SELECT * FROM {table.table_name()} {where} LIMIT 1"
        try:
            async with self.connection.execute(select, values) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise self.process_exception(e) from e
        if not row:
            return None
        return self.row_to_model(table, row)

    async def list(
        self,
        model: Union[T, Type[T]],
        limit: int = 25,
        after_id: Optional[int] = None,
        filters: Optional[dict] = None,
        order_by: Optional[list[str]] = None,
    ) -> list[T]:
        table = Storage.get_model_class(model)
        where, values = self._where(table, filters, after_id)
        # order_by entries are column names, "-column" for descending
        ordering = []
        for column in order_by or []:
            name = column.lstrip("-")
            if name not in table.get_fields():
                raise ValueError(f"Unknown order column: {name}")
            ordering.append(f"{name} DESC" if column.startswith("-") else f"{name} ASC")
        ordering.append("id ASC")
        select = (
            f"SELECT * FROM {table.table_name()} {where} "
            f"ORDER BY {', '.join(ordering)} LIMIT {int(limit)}"
        )
        try:
            async with self.connection.execute(select, values) as cursor:
                rows = await cursor.fetchall()
        except Exception as e:
            raise self.process_exception(e) from e
        return [self.row_to_model(table, row) for row in rows]

    async def count(
        self, model: Union[T, Type[T]], filters: Optional[dict] = None
    ) -> int:
        table = Storage.get_model_class(model)
        where, values = self._where(table, filters)
        select = f"SELECT COUNT(*) FROM {table.table_name()} {where}"
        try:
            async with self.connection.execute(select, values) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            raise self.process_exception(e) from e
        return row[0]

    async def update(self, model: Union[T, Type[T]], filters: dict, updates: dict):
        """Updates the matching rows and returns the first, None when nothing matched"""
        if not filters:
            raise ValueError("filters are empty")
        table = Storage.get_model_class(model)
        updates = self.encode(table.get_schema(exclude=["id"]), updates)
        if not updates:
            return None

        set_clause = ", ".join([f"{attr}=?" for attr in updates])
        where, where_values = self._where(table, filters)
        sql = f"UPDATE {table.table_name()} SET {set_clause} {where} RETURNING *"
        try:
            async with self.connection.execute(
                sql, (*updates.values(), *where_values)
            ) as cursor:
                row = await cursor.fetchone()
            await self._autocommit()
        except Exception as e:
            raise self.process_exception(e) from e
        if not row:
            return None
        return self.row_to_model(table, row)

    async def delete(self, model: Union[T, Type[T]], filters: dict) -> int:
        """Deletes every matching row and returns how many went"""
        if not filters:
            raise ValueError("filters are empty")
        table = Storage.get_model_class(model)
        where, values = self._where(table, filters)
        sql = f"DELETE FROM {table.table_name()} {where}"
        try:
            async with self.connection.execute(sql, values) as cursor:
                deleted = cursor.rowcount
            await self._autocommit()
        except Exception as e:
            raise self.process_exception(e) from e
        return deleted

    async def _autocommit(self):
        if not self.in_transaction:
            await self.connection.commit()

    async def rollback(self):
        self.in_transaction = False
        return await self.connection.rollback()

    async def begin(self):
        await self.connection.execute("BEGIN")
        self.in_transaction = True

    async def commit(self):
        self.in_transaction = False
        await self.connection.commit()

    async def connect(self):
        self.connection = await aiosqlite.connect(self.conn_uri)
        return self

    async def close(self):
        await self.connection.close()

    def get_placeholder(self, count: int):
        return ",".join("?" for _ in range(count))

    def process_exception(self, e: Exception) -> Exception:
        if isinstance(e, StorageError):
            return e
        msg = str(e)
        if isinstance(e, aiosqlite.IntegrityError):
            if "UNIQUE constraint failed" in msg:
                return DuplicateEntry(msg)
            elif "NOT NULL constraint failed" in msg:
                return MissingField(msg)
            return StorageError(f"integrity error: {msg}")

        elif isinstance(e, aiosqlite.OperationalError):
            if "no such table" in msg:
                return TableNotFound(msg)
            return StorageError(f"operational error: {msg}")

        return StorageError(msg)


class SQLite(Storage):
    def __init__(self, connection_uri: str, debug=False):
        super().__init__(connection_uri, debug)

    @asynccontextmanager
    async def session(self):
        session = SQLiteSession(self.conn_uri)
        await session.connect()
        try:
            yield session
        finally:
            await session.close()
