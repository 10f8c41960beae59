"""
Schema creation for the PostgreSQL-wire backend.

Renders CREATE TABLE / CREATE INDEX statements from the table catalog so the
physical layout always matches the key strategies that write into it.
"""

from __future__ import annotations

from typing import List, Mapping

from psycopg import Connection, sql

from keyspread.domain.schema import TableSchema
from keyspread.utils.logging import get_logger

log = get_logger(__name__)


def create_table_statement(schema: TableSchema) -> sql.Composed:
    columns = []
    for column in schema.columns:
        parts = [sql.Identifier(column.name), sql.SQL(column.sql_type)]
        if not column.nullable:
            parts.append(sql.SQL("NOT NULL"))
        if column.default is not None:
            parts.append(sql.SQL("DEFAULT {}").format(sql.SQL(column.default)))
        columns.append(sql.SQL(" ").join(parts))
    primary_key = sql.SQL("PRIMARY KEY ({})").format(
        sql.SQL(", ").join(sql.Identifier(c) for c in schema.primary_key)
    )
    return sql.SQL("CREATE TABLE IF NOT EXISTS {} ({})").format(
        sql.Identifier(schema.name), sql.SQL(", ").join(columns + [primary_key])
    )


def create_index_statements(schema: TableSchema) -> List[sql.Composed]:
    return [
        sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} ({})").format(
            sql.Identifier(f"{schema.name}_{index}"),
            sql.Identifier(schema.name),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        )
        for index, columns in schema.indexes.items()
    ]


def create_schema(conn: Connection, catalog: Mapping[str, TableSchema]) -> int:
    """
    Create every catalog table and its ordered indexes if missing.

    Returns the number of statements executed. `conn` should be in autocommit
    mode; distributed stores reject mixing DDL into explicit transactions.
    """
    executed = 0
    with conn.cursor() as cur:
        for schema in catalog.values():
            for stmt in [create_table_statement(schema), *create_index_statements(schema)]:
                cur.execute(stmt)
                executed += 1
            log.info("Table ready", extra={"table": schema.name})
    return executed


__all__ = ["create_table_statement", "create_index_statements", "create_schema"]
