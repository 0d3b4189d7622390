from abc import abstractmethod
from dataclasses import asdict, is_dataclass
from enum import Enum
import json
import logging
from typing import Type
from . import StorageSession
from ..models import Model, MissingDefault, CurrentTimeStamp
from datetime import datetime

logger = logging.getLogger(__name__)


def _json_default(value):
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


class SQLSession(StorageSession):
    in_transaction: bool = False

    async def init_schema(self, model: Type[Model]) -> str:
        table_name = model.table_name()
        schema = model.get_schema()
        columns_sql = []
        indexes = []

        for column, info in schema.items():
            col_type = info["type"]
            default = info["default"]

            # the primary key is indexed already
            if info["index"] and not info["primary_key"]:
                indexes.append(column)

            constraints = []
            if info["primary_key"]:
                constraints.append("PRIMARY KEY")
            if info["auto_increment"]:
                constraints.append(self.python_to_sqltype("auto_increment"))
            if info["unique"]:
                constraints.append("UNIQUE")

            not_null = ""
            if isinstance(col_type, list) and "NoneType" not in col_type:
                not_null = "NOT NULL"

            default_sql = ""
            if isinstance(default, CurrentTimeStamp):
                default_sql = f"DEFAULT {self.get_default_datetime_sql()}"
            elif not isinstance(default, MissingDefault):
                if col_type == "json":
                    default_sql = f"DEFAULT {self.get_default_json_sql()}"
                elif isinstance(default, str):
                    default_sql = f"DEFAULT '{default}'"
                elif default is None:
                    default_sql = "DEFAULT NULL"
                else:
                    default_sql = f"DEFAULT {default}"

            col_def = " ".join(
                part
                for part in [
                    column,
                    self.python_to_sqltype(col_type),
                    " ".join(constraints),
                    not_null,
                    default_sql,
                ]
                if part
            )
            columns_sql.append(col_def)

        create_table_sql = (
            f"CREATE TABLE IF NOT EXISTS {table_name} (\n  "
            + ",\n  ".join(columns_sql)
            + "\n);"
        )
        logger.debug("init schema for %s", table_name)
        await self.execute(create_table_sql, force_commit=True)
        await self.init_index(table_name, indexes)
        return create_table_sql

    async def create(self, model: Model) -> Model:
        try:
            table_name = model.table_name()
            model_values = self.encode(model.get_schema(), model.get_values())
            columns = list(model_values.keys())
            values = list(model_values.values())
            placeholders = self.get_placeholder(len(values))
            column_names = ",".join(columns)
            sql = f"INSERT INTO {table_name} ({column_names}) VALUES ({placeholders})"
            row_id = await self.execute(sql, values, force_commit=not self.in_transaction)
            model.id = row_id
            return model
        except Exception as e:
            raise self.process_exception(e) from e

    @abstractmethod
    def python_to_sqltype(self, py_type) -> str:
        pass

    @abstractmethod
    async def execute(self, sql: str, *args, force_commit=False):
        pass

    @abstractmethod
    def get_placeholder(self, count: int) -> str:
        pass

    def get_default_datetime_sql(self):
        return "CURRENT_TIMESTAMP"

    def get_default_json_sql(self):
        return "NULL"

    def get_datetime_format(self):
        return "%Y-%m-%d %H:%M:%S.%f"

    def format_datetime_for_db(self, dt: datetime) -> str:
        if dt is None:
            return None
        return dt.strftime(self.get_datetime_format())

    def parse_datetime_from_db(self, dt_str: str) -> datetime:
        if dt_str is None:
            return None
        try:
            return datetime.strptime(dt_str, self.get_datetime_format())
        except ValueError:
            # CURRENT_TIMESTAMP defaults come back without microseconds
            for fmt in ["%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S"]:
                try:
                    return datetime.strptime(dt_str, fmt)
                except ValueError:
                    continue
            return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))

    def encode(self, schema: dict, values: dict):
        new_values = {}
        for key, value in values.items():
            if key not in schema:
                continue
            key_type = schema[key]["type"]
            if key_type == "json" and value is not None:
                new_values[key] = json.dumps(value, default=_json_default)
            elif "datetime" in key_type and isinstance(value, datetime):
                new_values[key] = self.format_datetime_for_db(value)
            elif isinstance(value, Enum):
                new_values[key] = value.value
            else:
                new_values[key] = value
        return new_values

    def decode(self, schema: dict, values: dict):
        new_values = {}
        for key, value in values.items():
            if key not in schema:
                continue
            key_type = schema[key]["type"]
            if key_type == "json" and value is not None:
                new_values[key] = json.loads(value)
            elif "bool" in key_type and value is not None:
                new_values[key] = bool(value)
            elif "datetime" in key_type and value is not None:
                new_values[key] = self.parse_datetime_from_db(value)
            else:
                new_values[key] = value
        return new_values

    def row_to_model(self, table: Type[Model], row) -> Model:
        # rows start with the id column, which is init=False on every model
        schema = table.get_schema(exclude=["id"])
        result = table(**self.decode(schema, dict(zip(schema, row[1:]))))
        result.id = row[0]
        return result

    @abstractmethod
    def process_exception(self, e: Exception) -> Exception:
        pass
