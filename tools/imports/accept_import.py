#!/usr/bin/env python3
"""Accept a ticket import from the command line (operator replay)."""
from __future__ import annotations

import argparse
import json
import sys

from sqlalchemy import create_engine

from ticketops.apps.imports.errors import ImportLifecycleError
from ticketops.apps.imports.lifecycle import accept_import
from ticketops.core.observability import bind_trace_id


def _parse_rows(value: str | None) -> list[int] | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return []
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid row list: {value!r}") from None


def main(argv: list[str] | None = None, engine=None) -> int:
    p = argparse.ArgumentParser(description="Accept a parsed ticket import into target tables")
    p.add_argument("--import-id", type=int, required=True)
    p.add_argument("--rows", type=_parse_rows, default=None, help="CSV of row indices (default: all)")
    p.add_argument("--database-url", default=None)
    p.add_argument("--trace-id", default=None)
    args = p.parse_args(argv)

    bind_trace_id(args.trace_id)
    if engine is None and args.database_url:
        engine = create_engine(args.database_url, future=True)
    try:
        res = accept_import(args.import_id, included_rows=args.rows, engine=engine)
    except ImportLifecycleError as exc:
        print(json.dumps({"success": False, "error": exc.error, "message": exc.message}), file=sys.stderr)
        return 2 if exc.http_status < 500 else 3
    print(
        json.dumps(
            {
                "success": True,
                "importId": res.import_id,
                "created": {res.created_key: res.ids},
                "inserted": res.inserted,
                "failed": res.failed,
                "message": res.message,
            },
            default=str,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
