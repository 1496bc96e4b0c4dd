"""
Equality-only statement builders.

Every builder returns a ``(sql, params)`` pair with double-quoted
identifiers and positional ``?`` placeholders.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from txkeeper.exception import TxKeeperError

Statement = Tuple[str, List[Any]]


def quote_identifier(name: str) -> str:
    return '"' + str(name).replace('"', '""') + '"'


def _where_clause(where: Optional[Mapping[str, Any]]) -> Statement:
    if not where:
        return "", []
    clause = " AND ".join(f"{quote_identifier(col)} = ?" for col in where)
    return f" WHERE {clause}", list(where.values())


def build_insert(table: str, row: Mapping[str, Any]) -> Statement:
    if not row:
        raise TxKeeperError(f"Cannot insert an empty row into {table}")
    columns = ", ".join(quote_identifier(col) for col in row)
    placeholders = ", ".join("?" for _ in row)
    sql = (
        f"INSERT INTO {quote_identifier(table)} ({columns}) "
        f"VALUES ({placeholders})"
    )
    return sql, list(row.values())


def build_update(
    table: str,
    values: Mapping[str, Any],
    where: Optional[Mapping[str, Any]] = None,
) -> Statement:
    if not values:
        raise TxKeeperError(f"Cannot update {table} without any values")
    assignments = ", ".join(f"{quote_identifier(col)} = ?" for col in values)
    where_sql, where_params = _where_clause(where)
    sql = f"UPDATE {quote_identifier(table)} SET {assignments}{where_sql}"
    return sql, [*values.values(), *where_params]


def build_delete(
    table: str, where: Optional[Mapping[str, Any]] = None
) -> Statement:
    where_sql, where_params = _where_clause(where)
    return f"DELETE FROM {quote_identifier(table)}{where_sql}", where_params


def build_select(
    table: str,
    where: Optional[Mapping[str, Any]] = None,
    *,
    order_by: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Statement:
    """Build a ``SELECT *`` statement

    Args:
        table (str): Table to select from
        where (Mapping[str, Any], optional): Columns and the values they
            must equal. Defaults to `None`.
        order_by (Sequence[str], optional): Raw ordering terms such as
            ``"id DESC"``. Defaults to `None`.
        limit (int, optional): Defaults to `None`.
        offset (int, optional): Defaults to `None`.

    Returns:
        Tuple[str, List[Any]]: The statement and its parameters
    """
    where_sql, params = _where_clause(where)
    parts = [f"SELECT * FROM {quote_identifier(table)}{where_sql}"]
    if order_by:
        parts.append(f"ORDER BY {', '.join(order_by)}")
    if limit is not None:
        parts.append(f"LIMIT {int(limit)}")
    if offset is not None:
        parts.append(f"OFFSET {int(offset)}")
    return " ".join(parts), params


class QueryMixin:
    """Builder shortcuts for anything exposing ``execute`` and
    ``query_all``"""

    async def insert(self, table: str, row: Mapping[str, Any]):
        return await self.execute(*build_insert(table, row))

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        where: Optional[Mapping[str, Any]] = None,
    ):
        return await self.execute(*build_update(table, values, where))

    async def delete(
        self, table: str, where: Optional[Mapping[str, Any]] = None
    ):
        return await self.execute(*build_delete(table, where))

    async def select(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return await self.query_all(
            *build_select(
                table, where, order_by=order_by, limit=limit, offset=offset
            )
        )

    async def first(
        self, table: str, where: Optional[Mapping[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, where, limit=1)
        return rows[0] if rows else None

    find = select
    find_one = first
    create = insert
    update_one = update
    delete_one = delete
