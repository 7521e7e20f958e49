"""Schema Catalog - pure shaping of information_schema rows.

Invariants:
    - Tables keep first-seen order; columns keep ordinal order
    - nullable is a bool derived from is_nullable == "YES"
    - fingerprint() changes iff any (table, column, type, nullability) changes
"""

import hashlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    nullable: bool

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type, "nullable": self.nullable}


def group_columns(rows: Iterable[Mapping]) -> dict[str, list[ColumnInfo]]:
    """Group (table_name, column_name, data_type, is_nullable) rows by table."""
    tables: dict[str, list[ColumnInfo]] = {}
    for row in rows:
        tables.setdefault(row["table_name"], []).append(ColumnInfo(
            name=row["column_name"],
            type=row["data_type"],
            nullable=row["is_nullable"] == "YES",
        ))
    return tables


def tables_response(tables: Mapping[str, list[ColumnInfo]]) -> dict:
    """Shape for GET /schema."""
    return {
        "tables": {
            name: {"columns": [c.to_dict() for c in columns]}
            for name, columns in tables.items()
        },
    }


def fingerprint(tables: Mapping[str, list[ColumnInfo]]) -> str:
    digest = hashlib.sha256()
    for name in sorted(tables):
        for column in tables[name]:
            digest.update(
                f"{name}.{column.name}:{column.type}:{column.nullable};".encode(),
            )
    return digest.hexdigest()
