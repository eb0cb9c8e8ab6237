#!/usr/bin/env python3
"""Flip service-typed imports that look like delivery manifests."""
from __future__ import annotations

import argparse
import json

from sqlalchemy import create_engine

from ticketops.apps.imports.lifecycle import reclassify_delivery_imports
from ticketops.core.observability import bind_trace_id


def main(argv: list[str] | None = None, engine=None) -> int:
    p = argparse.ArgumentParser(description="Reclassify service imports detected as delivery")
    p.add_argument("--min-confidence", type=float, default=None)
    p.add_argument("--database-url", default=None)
    p.add_argument("--trace-id", default=None)
    args = p.parse_args(argv)

    bind_trace_id(args.trace_id)
    if engine is None and args.database_url:
        engine = create_engine(args.database_url, future=True)
    summary = reclassify_delivery_imports(engine=engine, min_confidence=args.min_confidence)
    print(json.dumps(summary, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
