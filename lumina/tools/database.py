"""
Database Tools
==============

Lightweight databases stored as JSON files in the workspace:

    Databases/reading-list.db.json
    {
        "name": "Reading list",
        "columns": [
            {"id": "title", "name": "Title", "type": "text"},
            {"id": "status", "name": "Status", "type": "select",
             "options": [{"id": "opt-1", "name": "Reading"}]}
        ],
        "rows": [
            {"id": "row-1", "cells": {"title": "SICP", "status": "opt-1"}}
        ]
    }

query_database is read-only; add_database_row is write-gated. Cells may be
given by column name or id, and select options by option name or id.
"""

import asyncio
import json
import uuid
from typing import Any

from lumina.tools.base import (
    InvalidParams,
    ToolExecutor,
    ToolResult,
    optional_int,
    optional_str,
    require_str,
)
from lumina.utils.logger import Logger

logger = Logger("DatabaseTools")

DATABASE_DIR = "Databases"
DATABASE_SUFFIX = ".db.json"


def _database_path(database_id: str) -> str:
    return f"{DATABASE_DIR}/{database_id}{DATABASE_SUFFIX}"


async def list_database_ids(store) -> list[str]:
    """Ids of every database file in the workspace."""
    def _ids() -> list[str]:
        folder = store.root / DATABASE_DIR
        if not folder.is_dir():
            return []
        return sorted(p.name[:-len(DATABASE_SUFFIX)] for p in folder.glob(f"*{DATABASE_SUFFIX}"))

    return await asyncio.to_thread(_ids)


async def load_database(store, database_id: str) -> dict | None:
    path = _database_path(database_id)
    if not await store.exists(path):
        return None
    data = json.loads(await store.read(path))
    data.setdefault("name", database_id)
    data.setdefault("columns", [])
    data.setdefault("rows", [])
    return data


async def save_database(store, database_id: str, data: dict) -> None:
    await store.write(_database_path(database_id), json.dumps(data, indent=2, ensure_ascii=False))


def _find_column(columns: list[dict], key: str) -> dict | None:
    for column in columns:
        if column.get("id") == key or column.get("name") == key:
            return column
    return None


def _option_id(column: dict, value: Any) -> Any:
    for option in column.get("options") or []:
        if option.get("id") == value or option.get("name") == value:
            return option["id"]
    return value


def _display_value(column: dict, value: Any) -> str:
    """Render a stored cell using option names instead of ids."""
    names = {o.get("id"): o.get("name") for o in column.get("options") or []}
    if isinstance(value, list):
        return ", ".join(str(names.get(v, v)) for v in value)
    if value is None:
        return ""
    return str(names.get(value, value))


def _missing_database(database_id: str, available: list[str]) -> ToolResult:
    return ToolResult.fail(
        f"database not found: {database_id}. Available databases: {', '.join(available) or 'none'}"
    )


class QueryDatabaseTool(ToolExecutor):
    name = "query_database"
    requires_approval = False
    description = "Show a database's columns and rows, optionally filtered by a column value."
    parameters = {
        "database_id": "Database id (file name without .db.json)",
        "filter_column": "Optional column name to filter on",
        "filter_value": "Value the filter column must equal",
        "limit": "Maximum rows (default 50)",
    }

    async def execute(self, params, context):
        database_id = require_str(params, "database_id")
        filter_column = optional_str(params, "filter_column")
        filter_value = params.get("filter_value")
        limit = optional_int(params, "limit", 50)

        db = await load_database(context.store, database_id)
        if db is None:
            return _missing_database(database_id, await list_database_ids(context.store))

        columns = db["columns"]
        rows = db["rows"]
        if filter_column:
            column = _find_column(columns, filter_column)
            if column is None:
                return ToolResult.fail(f"unknown column: {filter_column}")
            wanted = str(filter_value)
            rows = [
                row for row in rows
                if _display_value(column, row.get("cells", {}).get(column["id"])) == wanted
            ]

        header = " | ".join(c["name"] for c in columns)
        lines = [
            f'Database "{db["name"]}" ({len(rows)} rows)',
            "Columns: " + ", ".join(f'{c["name"]} ({c.get("type", "text")})' for c in columns),
            "",
            f"| id | {header} |",
        ]
        for row in rows[:limit]:
            cells = row.get("cells", {})
            values = " | ".join(_display_value(c, cells.get(c["id"])) for c in columns)
            lines.append(f"| {row.get('id')} | {values} |")
        if len(rows) > limit:
            lines.append(f"(showing first {limit} rows)")
        return ToolResult.ok("\n".join(lines))


class AddDatabaseRowTool(ToolExecutor):
    name = "add_database_row"
    requires_approval = True
    description = "Add a row to a database."
    parameters = {
        "database_id": "Database id (file name without .db.json)",
        "cells": 'JSON object of column name -> value, e.g. {"Title": "SICP", "Status": "Reading"}',
    }

    async def execute(self, params, context):
        database_id = require_str(params, "database_id")
        cells_raw = params.get("cells") or {}
        if isinstance(cells_raw, str):
            try:
                cells_raw = json.loads(cells_raw)
            except json.JSONDecodeError:
                raise InvalidParams("invalid parameter: cells must be a JSON object")
        if not isinstance(cells_raw, dict):
            raise InvalidParams("invalid parameter: cells must be a JSON object")

        db = await load_database(context.store, database_id)
        if db is None:
            return _missing_database(database_id, await list_database_ids(context.store))

        cells: dict[str, Any] = {}
        unknown = []
        for key, value in cells_raw.items():
            column = _find_column(db["columns"], key)
            if column is None:
                unknown.append(key)
                continue
            if column.get("type") in ("select", "multi-select"):
                value = [_option_id(column, v) for v in value] if isinstance(value, list) else _option_id(column, value)
            cells[column["id"]] = value

        if unknown:
            logger.warning(f"Ignoring unknown columns for {database_id}: {unknown}")

        row_id = f"row-{uuid.uuid4().hex[:8]}"
        db["rows"].append({"id": row_id, "cells": cells})
        await save_database(context.store, database_id, db)

        added = ", ".join(
            f'{c["name"]}: {_display_value(c, cells[c["id"]])}'
            for c in db["columns"] if c["id"] in cells
        )
        message = f'Added row {row_id} to "{db["name"]}". Values: {added or "none"}.'
        if unknown:
            message += f" Ignored unknown columns: {', '.join(unknown)}."
        return ToolResult.ok(message)
