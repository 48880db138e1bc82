"""
Entity CLI tool for EntityDB.

This tool inspects and maintains a document store:
- schemas: List stored schemas
- show: Print a schema document as JSON
- count: Count the entities of a type
- find: Page through the entities of a type
- delete: Trash an entity, or remove it permanently

Usage:
    entitydb schemas
    entitydb show article
    entitydb find article --filter '{"fieldData.status": "draft"}' --order '{"machineName": 1}'
    entitydb delete article hello-world --permanently

The store is selected through the ENTITYDB_* environment settings.

Invariants:
    - EntityDbError exits with status 1 and a message on stderr
    - JSON output is deterministic (sorted keys)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from ..config import Settings
from ..errors import CantFindEntityError, EntityDbError
from ..log import setup_logging
from ..manager import EntityManager
from ..store import DocumentStore, create_document_store

logger = logging.getLogger(__name__)


class EntityCLI:
    """CLI commands bound to one manager.

    Example:
        >>> cli = EntityCLI(EntityManager(store))
        >>> print(await cli.schemas())
        article    Article
    """

    def __init__(self, manager: EntityManager) -> None:
        self.manager = manager

    async def schemas(self) -> str:
        """List stored schemas, one per line."""
        summaries = await self.manager.schemas()
        return "\n".join(f"{summary.machine_name}\t{summary.title}" for summary in summaries)

    async def show(self, name: str) -> str:
        """Render a schema document as JSON."""
        doc = await self.manager.schemas_collection.find_one({"machineName": name})
        if doc is None:
            raise CantFindEntityError(self.manager.settings.schemas_collection, name)
        return json.dumps(doc, indent=2, sort_keys=True)

    async def count(self, entity_type: str) -> str:
        return str(await self.manager.count(entity_type))

    async def find(
        self,
        entity_type: str,
        criteria: Optional[Dict[str, Any]] = None,
        order: Optional[Dict[str, int]] = None,
        per_page: Optional[int] = None,
        page: Optional[int] = None,
    ) -> str:
        """Render one page of machine names followed by paging totals."""
        result = await self.manager.find(
            entity_type,
            {"filter": criteria or {}, "orderBy": order},
            per_page=per_page,
            page=page,
        )
        lines: List[str] = [str(name) for name in result.machine_names]
        lines.append(
            f"page {result.page}/{result.page_count} "
            f"({result.total} total, {result.per_page or 'all'} per page)"
        )
        return "\n".join(lines)

    async def delete(self, entity_type: str, machine_name: str, permanently: bool = False) -> str:
        entity = await self.manager.load(entity_type, machine_name)
        await entity.delete(permanently=permanently)
        state = "removed" if not entity.is_trashed else "trashed"
        return f"{entity_type}/{machine_name} {state}"


def _json_argument(value: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"invalid JSON: {e}")
    if not isinstance(parsed, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="EntityDB entity management tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # schemas command
    subparsers.add_parser("schemas", help="List stored schemas")

    # show command
    show_parser = subparsers.add_parser("show", help="Print a schema as JSON")
    show_parser.add_argument("schema", help="Schema machine name")

    # count command
    count_parser = subparsers.add_parser("count", help="Count entities of a type")
    count_parser.add_argument("type", help="Entity type (schema machine name)")

    # find command
    find_parser = subparsers.add_parser("find", help="Page through entities of a type")
    find_parser.add_argument("type", help="Entity type (schema machine name)")
    find_parser.add_argument("--filter", type=_json_argument, help="Filter as a JSON object")
    find_parser.add_argument("--order", type=_json_argument, help="Sort spec as a JSON object")
    find_parser.add_argument("--per-page", type=int, help="Page size, 0 for no limit")
    find_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Trash or remove an entity")
    delete_parser.add_argument("type", help="Entity type (schema machine name)")
    delete_parser.add_argument("machine_name", help="Entity machine name")
    delete_parser.add_argument(
        "--permanently", action="store_true", help="Remove instead of moving to the trash"
    )

    return parser


async def run(args: argparse.Namespace, store: DocumentStore, settings: Settings) -> str:
    """Execute a parsed command against a store."""
    cli = EntityCLI(EntityManager(store, settings=settings))

    if args.command == "schemas":
        return await cli.schemas()
    elif args.command == "show":
        return await cli.show(args.schema)
    elif args.command == "count":
        return await cli.count(args.type)
    elif args.command == "find":
        return await cli.find(args.type, args.filter, args.order, args.per_page, args.page)
    elif args.command == "delete":
        return await cli.delete(args.type, args.machine_name, args.permanently)
    raise ValueError(f"Unknown command: {args.command}")


async def _main(args: argparse.Namespace, settings: Settings) -> str:
    store = create_document_store(settings)
    try:
        return await run(args, store, settings)
    finally:
        await store.close()


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for the entity tool."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(settings)

    try:
        output = asyncio.run(_main(args, settings))
    except EntityDbError as e:
        logger.debug("Command failed", extra={"code": e.code, "details": e.details})
        print(f"error: {e.message}", file=sys.stderr)
        sys.exit(1)

    if output:
        print(output)
    sys.exit(0)


if __name__ == "__main__":
    main()
