"""Apply the Postgres schema, or the Core metadata on other backends."""

from __future__ import annotations

import logging
import pathlib
import sys
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pixelbridge.config import configure_logging, load_config
from pixelbridge.db.session import create_engine_from_config
from pixelbridge.db.tables import metadata

logger = logging.getLogger(__name__)

SCHEMA_PATH = pathlib.Path(__file__).with_name("schema.sql")


def run_migrations(engine: Engine, schema_path: pathlib.Path = SCHEMA_PATH) -> int:
    """Returns the number of statements executed.

    schema.sql uses Postgres types (SERIAL, JSONB), so any other dialect gets
    ``metadata.create_all`` instead.
    """
    if engine.dialect.name != "postgresql":
        metadata.create_all(engine)
        logger.info("Created tables from metadata on %s", engine.dialect.name)
        return len(metadata.tables)
    count = 0
    with engine.begin() as conn:
        for stmt in split_statements(schema_path.read_text()):
            conn.execute(text(stmt))
            count += 1
    logger.info("Applied %s schema statements", count)
    return count


def split_statements(sql: str) -> Iterator[str]:
    buffer: list[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("--"):
            continue
        buffer.append(line)
        if stripped.endswith(";"):
            yield "\n".join(buffer)
            buffer.clear()
    if buffer:
        yield "\n".join(buffer)


def main() -> None:
    config = load_config()
    configure_logging(config.log_level)
    engine = create_engine_from_config(config)
    try:
        run_migrations(engine)
    except SQLAlchemyError as exc:
        logger.error("Migration failed: %s", exc)
        sys.exit(2)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
