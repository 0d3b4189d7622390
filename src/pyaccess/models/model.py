from abc import ABC
from dataclasses import dataclass, asdict, fields, MISSING, field
from enum import Enum
from typing import ClassVar
from typing import get_origin, get_args, Union, Optional
from types import UnionType
import datetime


class MissingDefault:
    pass


class CurrentTimeStamp:
    pass


def _type_names(field_type) -> list[str]:
    return [t.__name__ if hasattr(t, "__name__") else str(t) for t in get_args(field_type)]


@dataclass
class Model(ABC):
    # exclude is a ClassVar so fields() ignores it; id is excluded from inserts
    # because sqlite assigns it
    exclude: ClassVar[list[str]] = ["id"]
    __tablename__: ClassVar[Optional[str]] = None

    id: Optional[int] = field(
        default=None,
        metadata={"primary_key": True, "index": True, "auto_increment": True},
        init=False,
    )

    @classmethod
    def table_name(cls) -> str:
        return cls.__tablename__ or cls.__name__.lower()

    def to_dict(self, exclude: list[str] = [], include_none: bool = True) -> dict:
        data = asdict(self)
        return {
            k: v
            for k, v in data.items()
            if k not in self.exclude
            and k not in exclude
            and (include_none or v is not None)
        }

    @classmethod
    def get_fields(cls):
        return {f.name for f in fields(cls)}

    def get_values(self):
        """
        Values to insert. None is only kept for columns whose annotation allows it,
        everything else falls back to the column default.
        """
        insert_data = {}
        for f in fields(self):
            if f.name in self.exclude:
                continue

            value = getattr(self, f.name, None)
            if value is None:
                origin = get_origin(f.type)
                if (origin is Union or origin is UnionType) and "NoneType" in _type_names(
                    f.type
                ):
                    insert_data[f.name] = value
            elif isinstance(value, Enum):
                insert_data[f.name] = value.value
            else:
                insert_data[f.name] = value

        return insert_data

    @classmethod
    def get_schema(cls, exclude=[]):
        """Column schema; plain defaults are ignored, only default_factory is considered"""
        schema = {}
        for f in fields(cls):
            if f.name in exclude:
                continue
            field_type = f.type
            origin = get_origin(field_type)
            default = MissingDefault()
            if f.default_factory is not MISSING:
                if isinstance(field_type, type) and issubclass(
                    field_type, datetime.datetime
                ):
                    default = CurrentTimeStamp()
                else:
                    default = f.default_factory()

            schema[f.name] = {
                "type": None,
                "default": default,
                "primary_key": f.metadata.get("primary_key", False),
                "index": f.metadata.get("index", False),
                "unique": f.metadata.get("unique", False),
                "auto_increment": f.metadata.get("auto_increment", False),
            }
            if origin is Union or origin is UnionType:
                schema[f.name]["type"] = _type_names(field_type)
            # list[...] and dict[...] end up as json, Optional[list] is a union above
            elif origin in (list, dict):
                schema[f.name]["type"] = "json"
            else:
                schema[f.name]["type"] = [
                    field_type.__name__
                    if hasattr(field_type, "__name__")
                    else str(field_type)
                ]

        return schema
