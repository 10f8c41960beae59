"""
PostgreSQL-wire store backend.

Targets a serializable, range-sharded SQL store that speaks the PostgreSQL
protocol (CockroachDB); vanilla PostgreSQL works for functional runs. All
statements are rendered with `psycopg.sql` from the table catalog, and every
psycopg failure is translated into the keyspread error hierarchy at this
boundary.
"""

from __future__ import annotations

import itertools
import re
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Generator,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

import psycopg
from psycopg import Connection, sql
from psycopg.errors import SerializationFailure, UniqueViolation
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from keyspread.domain.errors import EncodingError, NotFound, TransportError, UniquenessViolation
from keyspread.domain.schema import TableSchema
from keyspread.store.abstract import (
    COMMIT_TIMESTAMP,
    Mutation,
    MutationOp,
    StoreBackend,
    Transaction,
)
from keyspread.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

_SCAN_ITERSIZE = 100

# PostgreSQL: Key (a, b)=(x, y) already exists.  CockroachDB quotes the values.
_DUPLICATE_KEY_DETAIL = re.compile(r"Key \((?P<columns>.*)\)=\((?P<values>.*)\) already exists")


def _where(table: Optional[str]) -> str:
    return f" on {table}" if table else ""


def _key_from_detail(detail: Optional[str]) -> Tuple[str, ...]:
    """Recover the colliding key from a unique-violation detail message."""
    match = _DUPLICATE_KEY_DETAIL.search(detail or "")
    if match is None:
        return ()
    return tuple(v.strip().strip("'") for v in match.group("values").split(","))


@contextmanager
def _translate_errors(
    table: Optional[str] = None, key: Sequence[Any] = (), passthrough_aborts: bool = False
) -> Generator[None, None, None]:
    try:
        yield
    except SerializationFailure:
        if passthrough_aborts:
            raise
        raise TransportError(
            f"transaction aborted by the store{_where(table)}", table=table
        ) from None
    except UniqueViolation as exc:
        name = exc.diag.table_name or table or "?"
        detail = exc.diag.message_detail or ""
        raise UniquenessViolation(name, key or _key_from_detail(detail), detail=detail) from exc
    except (psycopg.DataError, psycopg.IntegrityError) as exc:
        # The row itself was rejected: bad value, missing column, failed check.
        raise EncodingError(f"row rejected{_where(table)}: {exc}", table=table) from exc
    except (psycopg.OperationalError, psycopg.InterfaceError, PoolTimeout) as exc:
        raise TransportError(f"store call failed{_where(table)}: {exc}", table=table) from exc
    except psycopg.Error as exc:
        raise TransportError(f"store rejected the call{_where(table)}: {exc}", table=table) from exc


def _adapt(value: Any) -> Any:
    if isinstance(value, dict):
        return Jsonb(value)
    return value


def _where_key(schema: TableSchema) -> sql.Composed:
    return sql.SQL(" AND ").join(
        sql.SQL("{} = %s").format(sql.Identifier(c)) for c in schema.primary_key
    )


def _columns_sql(columns: Sequence[str]) -> sql.Composed:
    return sql.SQL(", ").join(sql.Identifier(c) for c in columns)


def _insert_statement(table: str, values: Mapping[str, Any]) -> Tuple[sql.Composed, List[Any]]:
    columns = list(values)
    placeholders = [
        sql.SQL("now()") if values[c] is COMMIT_TIMESTAMP else sql.Placeholder() for c in columns
    ]
    stmt = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
        sql.Identifier(table), _columns_sql(columns), sql.SQL(", ").join(placeholders)
    )
    params = [_adapt(values[c]) for c in columns if values[c] is not COMMIT_TIMESTAMP]
    return stmt, params


def _update_statement(
    schema: TableSchema, values: Mapping[str, Any]
) -> Tuple[sql.Composed, List[Any]]:
    columns = [c for c in values if c not in schema.primary_key]
    assignments = [
        sql.SQL("{} = now()").format(sql.Identifier(c))
        if values[c] is COMMIT_TIMESTAMP
        else sql.SQL("{} = %s").format(sql.Identifier(c))
        for c in columns
    ]
    stmt = sql.SQL("UPDATE {} SET {} WHERE {}").format(
        sql.Identifier(schema.name), sql.SQL(", ").join(assignments), _where_key(schema)
    )
    params = [_adapt(values[c]) for c in columns if values[c] is not COMMIT_TIMESTAMP]
    params.extend(values[c] for c in schema.primary_key)
    return stmt, params


class _PostgresTransaction(Transaction):
    def __init__(self, backend: "PostgresBackend", conn: Connection) -> None:
        self._backend = backend
        self._conn = conn
        self._buffer: List[Mutation] = []

    def read_row(
        self, table: str, key: Sequence[Any], columns: Optional[Sequence[str]] = None
    ) -> dict:
        # Lock the row so concurrent read-modify-writes queue instead of aborting.
        return self._backend._read_row(self._conn, table, key, columns, for_update=True)

    def buffer_write(self, mutations: Sequence[Mutation]) -> None:
        self._buffer.extend(mutations)

    def flush(self) -> None:
        self._backend._write(self._conn, self._buffer)
        self._buffer.clear()


class PostgresBackend(StoreBackend):
    """
    Store backend over a shared psycopg ConnectionPool.

    Parameters
    ----------
    pool : ConnectionPool
        Open pool; the backend closes it on `close()`.
    catalog : mapping of table name to TableSchema
        Tables the backend renders statements for.
    max_txn_attempts : int
        How many times a read-write transaction body is run when the store
        aborts it with a serialization failure.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        catalog: Mapping[str, TableSchema],
        max_txn_attempts: int = 10,
    ) -> None:
        self._pool = pool
        self.catalog = dict(catalog)
        self.max_txn_attempts = max_txn_attempts
        self._scan_ids = itertools.count()

    def _write(self, conn: Connection, mutations: Sequence[Mutation]) -> None:
        # Consecutive inserts into the same table with the same column set
        # go out as one executemany (pipelined by psycopg).
        def group_key(m: Mutation) -> Tuple[MutationOp, str, Tuple[str, ...]]:
            return m.op, m.table, tuple(
                f"{c}:ts" if v is COMMIT_TIMESTAMP else c for c, v in m.values.items()
            )

        with conn.cursor() as cur:
            for (op, table, _), group in itertools.groupby(mutations, key=group_key):
                batch = list(group)
                schema = self.schema(table)
                if op is MutationOp.INSERT:
                    stmt, _params = _insert_statement(table, batch[0].values)
                    with _translate_errors(table, passthrough_aborts=True):
                        cur.executemany(stmt, [_insert_statement(table, m.values)[1] for m in batch])
                    continue
                for mutation in batch:
                    stmt, params = _update_statement(schema, mutation.values)
                    key = schema.key_of(mutation.values)
                    with _translate_errors(table, key, passthrough_aborts=True):
                        cur.execute(stmt, params)
                    if cur.rowcount == 0:
                        raise NotFound(table, key)

    def _read_row(
        self,
        conn: Connection,
        table: str,
        key: Sequence[Any],
        columns: Optional[Sequence[str]],
        for_update: bool = False,
    ) -> dict:
        schema = self.schema(table)
        stmt = sql.SQL("SELECT {} FROM {} WHERE {}{}").format(
            _columns_sql(columns or schema.column_names),
            sql.Identifier(table),
            _where_key(schema),
            sql.SQL(" FOR UPDATE") if for_update else sql.SQL(""),
        )
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(stmt, list(key))
            row = cur.fetchone()
        if row is None:
            raise NotFound(table, key)
        return row

    def apply(self, mutations: Sequence[Mutation]) -> None:
        if not mutations:
            return
        with _translate_errors():
            with self._pool.connection() as conn:
                with conn.transaction():
                    self._write(conn, mutations)

    def read_row(
        self, table: str, key: Sequence[Any], columns: Optional[Sequence[str]] = None
    ) -> dict:
        with _translate_errors(table, key):
            with self._pool.connection() as conn:
                return self._read_row(conn, table, key, columns)

    def scan(
        self,
        table: str,
        index: Optional[str] = None,
        columns: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> Iterator[dict]:
        schema = self.schema(table)
        order = schema.index_columns(index) if index else schema.primary_key
        stmt = sql.SQL("SELECT {} FROM {} ORDER BY {}").format(
            _columns_sql(columns or schema.column_names),
            sql.Identifier(table),
            _columns_sql(order),
        )
        params: Tuple[Any, ...] = ()
        itersize = _SCAN_ITERSIZE
        if limit is not None:
            stmt = sql.Composed([stmt, sql.SQL(" LIMIT %s")])
            params = (limit,)
            itersize = max(1, min(limit, _SCAN_ITERSIZE))
        cursor_name = f"keyspread_scan_{next(self._scan_ids)}"
        with _translate_errors(table):
            with self._pool.connection() as conn:
                # Server-side cursor: rows are pulled in itersize chunks, and
                # closing the generator early closes the cursor.
                with conn.cursor(name=cursor_name, row_factory=dict_row) as cur:
                    cur.itersize = itersize
                    cur.execute(stmt, params)
                    yield from cur

    def read_projection(self, table: str, columns: Sequence[str], limit: int) -> List[dict]:
        self.schema(table)
        stmt = sql.SQL("SELECT {} FROM {} LIMIT %s").format(
            _columns_sql(columns), sql.Identifier(table)
        )
        with _translate_errors(table):
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(stmt, (limit,))
                    return cur.fetchall()

    def _run_once(self, fn: Callable[[Transaction], T]) -> T:
        with self._pool.connection() as conn:
            with conn.transaction():
                txn = _PostgresTransaction(self, conn)
                result = fn(txn)
                txn.flush()
        return result

    def run_in_transaction(self, fn: Callable[[Transaction], T]) -> T:
        with _translate_errors():
            for attempt in Retrying(
                stop=stop_after_attempt(self.max_txn_attempts),
                wait=wait_exponential(multiplier=0.01, max=1),
                retry=retry_if_exception_type(SerializationFailure),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        log.debug(
                            "Transaction aborted by store, running again",
                            extra={"attempt": attempt.retry_state.attempt_number},
                        )
                    result = self._run_once(fn)
        return result

    def close(self) -> None:
        self._pool.close()


__all__ = ["PostgresBackend"]
