#!/usr/bin/env python3
"""Command-line entrypoint: fuse ranked lists stored as JSON files.

Each file holds either one list object::

    {"source": "bm25", "items": [{"key": "doc-1", "weight": 12.3}, ...]}

a bare list of ``[key, weight]`` pairs or ``{"key", "weight"}`` objects (the
file stem becomes the source), or ``{"lists": [<list object>, ...]}``.
The fused result is printed to stdout as JSON.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

import structlog

from .common.config import load_config
from .common.logging import configure_logging
from .fusion.base import FusionError, InvalidInputError
from .fusion.models import RankedItem, RankedList
from .fusion.pipeline import FusionPipeline

logger = structlog.get_logger("rankfusion.cli")


def _parse_items(source: str, raw_items: Any) -> RankedList:
    if not isinstance(raw_items, list):
        raise InvalidInputError(f"Source {source!r}: items must be a JSON array", source=source)

    items = []
    for raw in raw_items:
        if isinstance(raw, dict) and "key" in raw and "weight" in raw:
            items.append(RankedItem(raw["key"], raw["weight"]))
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            items.append(RankedItem(raw[0], raw[1]))
        else:
            raise InvalidInputError(f"Source {source!r}: malformed item {raw!r}", source=source)
    return RankedList(source=source, items=tuple(items))


def _parse_list_object(payload: Any, default_source: str) -> RankedList:
    if isinstance(payload, dict):
        return _parse_items(str(payload.get("source") or default_source), payload.get("items"))
    return _parse_items(default_source, payload)


def load_lists(path: Path) -> List[RankedList]:
    """Read one JSON file into one or more ``RankedList`` values."""
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)

    if isinstance(payload, dict) and "lists" in payload:
        return [
            _parse_list_object(entry, f"{path.stem}[{index}]")
            for index, entry in enumerate(payload["lists"])
        ]
    return [_parse_list_object(payload, path.stem)]


def parse_weights(value: Optional[str]) -> Any:
    """Parse ``--weights``: JSON list/object or comma-separated floats."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        try:
            return [float(part) for part in value.split(",") if part.strip()]
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid weights: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rankfusion",
        description="Fuse scored lists from independent sources into one ranking"
    )
    parser.add_argument("files", nargs="+", type=Path, help="JSON files holding ranked lists")
    parser.add_argument("--normalization", choices=["min-max", "none", "z-score", "reciprocal-rank"])
    parser.add_argument("--conflation", choices=["max", "sum", "mean", "weighted-sum"])
    parser.add_argument("--weights", type=parse_weights, help="per-source multipliers for weighted-sum")
    parser.add_argument("--degenerate-policy", choices=["error", "constant-one", "constant-zero"])
    parser.add_argument("--tie-break", choices=["stable-input-order", "lexical-key"])
    parser.add_argument("--duplicate-policy", choices=["error", "keep-first", "keep-last", "keep-max"])
    parser.add_argument("--skip-empty", action="store_true", help="skip empty lists instead of failing")
    parser.add_argument("--top-k", type=int)
    parser.add_argument("--pairs", action="store_true", help="print [key, weight] pairs only")
    parser.add_argument("--log-level")
    parser.add_argument("--log-format", choices=["json", "console"])
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI; returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(
            normalization=args.normalization,
            conflation=args.conflation,
            source_weights=args.weights,
            degenerate_range_policy=args.degenerate_policy,
            tie_break=args.tie_break,
            duplicate_key_policy=args.duplicate_policy,
            empty_list_policy="skip" if args.skip_empty else None,
            top_k=args.top_k,
            log_level=args.log_level,
            log_format=args.log_format,
        )
        configure_logging(config.service_name, config.log_level, config.log_format)

        lists: List[RankedList] = []
        for path in args.files:
            lists.extend(load_lists(path))
        logger.info("Loaded ranked lists", files=len(args.files), list_count=len(lists))

        result = FusionPipeline(config).run(lists)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        print(f"rankfusion: cannot read input: {e}", file=sys.stderr)
        return 1
    except (FusionError, ValueError) as e:
        print(f"rankfusion: {e}", file=sys.stderr)
        return 2

    output = result.to_pairs() if args.pairs else result.to_dict()
    json.dump(output, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
