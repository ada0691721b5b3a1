"""Copy a JSON-file local storage document into the database storage backend."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from support_plus.config import DEFAULT_STORAGE_PATH
from support_plus.storage import DatabaseStorage, JsonFileStorage, KeyValueStorage


logger = logging.getLogger("backfill")


def backfill_storage(source: KeyValueStorage, target: KeyValueStorage, *, overwrite: bool = False) -> int:
    """Copy every key from ``source`` to ``target``; existing target keys are kept unless ``overwrite``."""
    imported = 0
    for key in source.keys():
        value = source.get_item(key)
        if value is None:
            continue
        if not overwrite and target.get_item(key) is not None:
            logger.info("Skipping %s; already present in the database", key)
            continue
        target.set_item(key, value)
        imported += 1
    logger.info("Imported %d local storage entries", imported)
    return imported


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill the JSON local storage file into the database.")
    parser.add_argument("--source", type=Path, default=DEFAULT_STORAGE_PATH)
    parser.add_argument("--overwrite", action="store_true", help="Replace keys that already exist in the database.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    if not args.source.exists():
        logger.info("No local storage file found at %s", args.source)
        return
    total = backfill_storage(JsonFileStorage(args.source), DatabaseStorage(), overwrite=args.overwrite)
    logger.info("Backfill completed: %d entries", total)


if __name__ == "__main__":
    main()
