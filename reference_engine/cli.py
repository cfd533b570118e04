"""Command-line utilities for the reference engine."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

from reference_engine.api import ReferenceClient
from reference_engine.core.models import DuplicateHandling, GroupMergeStrategy
from reference_engine.exceptions import ValidationError


def _load_json(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


def _load_results(path: str) -> list[Any]:
    payload = _load_json(path)
    if isinstance(payload, dict):
        payload = payload.get("results", [])
    if not isinstance(payload, list):
        raise ValidationError("Results file must hold a JSON list or {\"results\": [...]}")
    return payload


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: _to_jsonable(getattr(value, field.name)) for field in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _emit(payload: Any) -> None:
    print(json.dumps(_to_jsonable(payload), indent=2, ensure_ascii=False))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reference deduplication and ranking utilities")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    dedupe = subparsers.add_parser("dedupe", help="Print duplicate groups found in a results file")
    dedupe.add_argument("results", help="JSON file with search results ('-' for stdin)")

    rank = subparsers.add_parser("rank", help="Rank results as suggestions for some content")
    rank.add_argument("results", help="JSON file with search results ('-' for stdin)")
    rank.add_argument("--content", required=True, help="JSON file describing the research content")
    rank.add_argument("--max", type=int, default=10, dest="max_suggestions")

    merge = subparsers.add_parser("merge", help="Print results with duplicate groups merged")
    merge.add_argument("results", help="JSON file with search results ('-' for stdin)")
    merge.add_argument(
        "--strategy",
        default=GroupMergeStrategy.KEEP_HIGHEST_QUALITY.value,
        choices=[strategy.value for strategy in GroupMergeStrategy],
    )

    add = subparsers.add_parser("add", help="Add results to a conversation in the configured store")
    add.add_argument("results", help="JSON file with search results ('-' for stdin)")
    add.add_argument("--conversation", required=True, help="Owning conversation id")
    add.add_argument(
        "--duplicate-handling",
        default=None,
        choices=[handling.value for handling in DuplicateHandling],
    )
    add.add_argument("--min-confidence", type=float, default=None)

    return parser


def _run_dedupe(client: ReferenceClient, args: argparse.Namespace) -> int:
    _emit(client.detect_duplicates(_load_results(args.results)))
    return 0


def _run_rank(client: ReferenceClient, args: argparse.Namespace) -> int:
    content = _load_json(args.content)
    if isinstance(content, str):
        content = {"content": content}
    _emit(client.generate_suggestions(_load_results(args.results), content, args.max_suggestions))
    return 0


def _run_merge(client: ReferenceClient, args: argparse.Namespace) -> int:
    _emit(client.remove_duplicates(_load_results(args.results), args.strategy))
    return 0


def _run_add(client: ReferenceClient, args: argparse.Namespace) -> int:
    options = {
        "duplicate_handling": args.duplicate_handling,
        "min_confidence": args.min_confidence,
    }
    outcomes = asyncio.run(
        client.add_multiple_references_from_search_results(
            _load_results(args.results), args.conversation, options
        )
    )
    _emit(outcomes)
    return 0 if all(outcome.success for outcome in outcomes) else 1


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))

    commands: dict[str, Any] = {
        "dedupe": _run_dedupe,
        "rank": _run_rank,
        "merge": _run_merge,
        "add": _run_add,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.error("Unknown command")
        return 1

    try:
        return handler(ReferenceClient(), args)
    except (ValidationError, OSError, json.JSONDecodeError) as exc:
        parser.error(str(exc))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
