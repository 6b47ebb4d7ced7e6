"""Command line entry point: duplicate a project, or publish one of its partitions."""

import argparse
import logging
import sys

from morphoclone.core.config import MorphoCloneConfig
from morphoclone.core.exceptions import MorphoCloneException
from morphoclone.duplication.duplicator import ModelDuplicator
from morphoclone.duplication.partition import PartitionModelDuplicator
from morphoclone.model import schema
from morphoclone.model.datamodel import DataModel


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="morphoclone-duplicate",
        description="Duplicate a MorphoBank project, or publish one of its partitions as a new project",
    )
    parser.add_argument("--database-url", required=True, help="SQLAlchemy URL of the MorphoBank database")
    parser.add_argument("--project-id", type=int, required=True, help="Project to duplicate")
    parser.add_argument("--user-id", type=int, help="Owner of the cloned rows (overrides user_id)")
    parser.add_argument("--partition-id", type=int, help="Only clone the rows of this partition")
    parser.add_argument("--media-directory", help="Root of the local media store")
    parser.add_argument("--s3-bucket", help="Bucket holding remote media and documents")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase logging (-v info, -vv debug)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    settings = {"database_url": args.database_url, "s3_bucket": args.s3_bucket, "logging_level": level}
    if args.media_directory:
        settings["media_directory"] = args.media_directory
    config = MorphoCloneConfig(**settings)
    logger = config.configure_logging()

    datamodel = DataModel(schema.metadata, schema.TABLE_NUMBERS)
    overrides = {"user_id": args.user_id} if args.user_id else {}
    if args.partition_id:
        duplicator = PartitionModelDuplicator.from_config(
            config, datamodel, "projects", args.project_id, partition_id=args.partition_id, overrides=overrides
        )
    else:
        duplicator = ModelDuplicator.from_config(
            config,
            datamodel,
            "projects",
            args.project_id,
            participating=schema.PROJECT_DUPLICATED_TABLES,
            ignored=schema.PROJECT_IGNORED_TABLES,
            numbered=schema.NUMBERED_TABLES,
            overrides=overrides,
        )

    engine = config.create_engine()
    try:
        with engine.begin() as conn:
            new_id = duplicator.duplicate(conn)
    except MorphoCloneException as e:
        logger.error(str(e))
        return 1
    finally:
        engine.dispose()

    print(new_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
