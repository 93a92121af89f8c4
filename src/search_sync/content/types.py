"""
Type Mapping

Translates primitive data types declared by content models into search
engine field types, and formats values for each field kind.

Unmapped data types yield None; callers skip such fields silently.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import CompileError
from sqlalchemy.types import TypeDecorator, TypeEngine


# Returned by formatters when a value must be left out of the document
MISSING: Any = object()

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_FALLBACK_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
)


# ---------------------------------------------------------------------
# Field Kinds
# ---------------------------------------------------------------------

class FieldKind(str, Enum):
    """
    Search engine field types a field specification can carry.
    """

    BOOLEAN = "boolean"
    BYTE = "byte"
    SHORT = "short"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    HALF_FLOAT = "half_float"
    DOUBLE = "double"
    DATE = "date"
    TEXT = "text"
    KEYWORD = "keyword"
    ATTACHMENT = "attachment"
    OBJECT = "object"
    NESTED = "nested"
    IP = "ip"
    GEO_POINT = "geo_point"

    @classmethod
    def parse(cls, value: Any) -> Optional["FieldKind"]:
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    def format(self, value: Any) -> Any:
        """
        Format a raw value for this kind, or return MISSING to omit it.
        """
        if self is FieldKind.DATE:
            formatted = format_date(value)
            return MISSING if formatted is None else formatted
        return value


# ---------------------------------------------------------------------
# Primitive Type Table
# ---------------------------------------------------------------------

MAPPINGS: Dict[str, FieldKind] = {
    "BOOLEAN": FieldKind.BOOLEAN,
    "DECIMAL": FieldKind.DOUBLE,
    "NUMERIC": FieldKind.DOUBLE,
    "DOUBLE": FieldKind.DOUBLE,
    "DOUBLE PRECISION": FieldKind.DOUBLE,
    "FLOAT": FieldKind.FLOAT,
    "REAL": FieldKind.FLOAT,
    "ENUM": FieldKind.TEXT,
    "TEXT": FieldKind.TEXT,
    "VARCHAR": FieldKind.TEXT,
    "NVARCHAR": FieldKind.TEXT,
    "CHAR": FieldKind.TEXT,
    "NCHAR": FieldKind.TEXT,
    "CLOB": FieldKind.TEXT,
    "STRING": FieldKind.TEXT,
    "HTMLTEXT": FieldKind.TEXT,
    "HTMLVARCHAR": FieldKind.TEXT,
    "INT": FieldKind.INTEGER,
    "INTEGER": FieldKind.INTEGER,
    "SMALLINT": FieldKind.INTEGER,
    "BIGINT": FieldKind.INTEGER,
    "YEAR": FieldKind.INTEGER,
    "DATE": FieldKind.DATE,
    "DATETIME": FieldKind.DATE,
    "TIMESTAMP": FieldKind.DATE,
    "SS_DATETIME": FieldKind.DATE,
    "FILE": FieldKind.ATTACHMENT,
    "IMAGE": FieldKind.ATTACHMENT,
}


def strip_data_type_parameters(data_type: str) -> str:
    """
    Remove a parameter suffix: ``"Varchar(255)"`` -> ``"Varchar"``.
    """
    pos = data_type.find("(")
    if pos > 0:
        data_type = data_type[:pos]
    return data_type.strip()


def map_primitive_type(data_type: Optional[str]) -> Optional[FieldKind]:
    """
    Resolve a primitive data type to a search field kind.

    Lookup is case-insensitive. Returns None for unmapped types.
    """
    if not data_type:
        return None
    return MAPPINGS.get(strip_data_type_parameters(data_type).upper())


def data_type_name(type_: TypeEngine) -> str:
    """
    Name a SQLAlchemy column type the way the type table expects.

    TypeDecorators report their `data_type` attribute (or class name);
    other types are compiled with the default dialect (``VARCHAR(255)``).
    """
    if isinstance(type_, TypeDecorator):
        return getattr(type_, "data_type", None) or type(type_).__name__

    try:
        return str(type_)
    except CompileError:
        return type(type_).__name__


# ---------------------------------------------------------------------
# Value Formatting
# ---------------------------------------------------------------------

def _parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return None


def format_date(value: Any) -> Optional[str]:
    """
    Render a timestamp-like value as ``YYYY-MM-DDTHH:MM:SS``.

    No timezone conversion is applied. Falsy or unparseable input gives None.
    """
    if not value:
        return None

    parsed = _parse_date(value)
    if parsed is None:
        return None

    return parsed.strftime(DATE_FORMAT)
