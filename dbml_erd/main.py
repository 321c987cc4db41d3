# To run:
# python -m dbml_erd.main schema.dbml --store .dbml_positions --layout TB


from __future__ import annotations

import argparse
import json
import logging
import sys
import traceback
from pathlib import Path

from dbml_erd.config import DiagramConfig
from dbml_erd.diagram_session import DiagramSession
from dbml_erd.logging_setup import setup_logging
from dbml_erd.position_store import JsonPositionStore

logger = logging.getLogger("main")


def build_parser(cfg: DiagramConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compile a DBML file into diagram graph JSON.")
    parser.add_argument("source", help="path to a .dbml file")
    parser.add_argument("--store", default=cfg.positions_dir, help="directory holding saved positions")
    parser.add_argument("--layout", choices=["TB", "LR"], default=None, help="run auto layout before output")
    parser.add_argument("--output", default=None, help="write JSON here instead of stdout")
    parser.add_argument("--log-level", default=cfg.log_level)
    return parser


def main(argv: list[str] | None = None) -> int:
    cfg = DiagramConfig()
    args = build_parser(cfg).parse_args(argv)
    setup_logging(args.log_level)

    try:
        source = Path(args.source).read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Cannot read '{args.source}': {exc}", file=sys.stderr)
        return 1

    try:
        session = DiagramSession(config=cfg, store=JsonPositionStore(args.store))
        session.apply_source(source)
        if session.error is not None:
            location = session.error.location
            prefix = f"{location.line}:{location.column}: " if location is not None else ""
            print(f"{prefix}{session.error.message}", file=sys.stderr)
            return 2
        if args.layout and not session.graph.is_empty():
            session.auto_layout(args.layout)

        payload = session.graph.to_dict()
        payload["positions"] = session.positions()
        text = json.dumps(payload, indent=2)
        if args.output:
            Path(args.output).write_text(text + "\n", encoding="utf-8")
            logger.info("Wrote %d nodes to %s", len(session.graph.nodes), args.output)
        else:
            print(text)
        return 0
    except Exception as exc:
        logger.error("Unhandled error: %s", exc)
        if cfg.debug:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
