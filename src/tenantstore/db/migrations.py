# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Schema migrations applied through Alembic."""

import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from beartype import beartype

from ..core.result_types import Err, Ok, Result
from .connection import ConnectionSpec
from .logging_bridge import BridgeHandler, DatabaseLogBridge

logger = logging.getLogger(__name__)

_CAPTURED_LOGGERS = ("alembic", "sqlalchemy.engine")


@beartype
def combine_errors(exc: BaseException) -> str:
    """Flatten an exception, its group members and its cause chain into one message."""
    messages: list[str] = []
    seen: set[int] = set()

    def walk(error: BaseException | None) -> None:
        while error is not None and id(error) not in seen:
            seen.add(id(error))
            if isinstance(error, BaseExceptionGroup):
                for member in error.exceptions:
                    walk(member)
            else:
                messages.append(f"{type(error).__name__}: {error}")
            error = error.__cause__ or error.__context__

    walk(exc)
    return "; ".join(messages)


@beartype
def alembic_config(spec: ConnectionSpec, directory: str | Path) -> Config:
    """Alembic configuration for ``directory`` without an ini file."""
    config = Config()
    config.set_main_option("script_location", str(directory))
    # passed out-of-band so configparser never interpolates the password
    config.attributes["connection_url"] = spec.sqlalchemy_url()
    return config


@beartype
async def run_migrations(
    spec: ConnectionSpec,
    directory: str | Path,
    *,
    bridge: DatabaseLogBridge | None = None,
) -> Result[list[str], str]:
    """Upgrade the schema to the newest revision in ``directory``.

    Alembic is synchronous, so the upgrade runs in a worker thread. Failures
    are returned, not raised: whether a failed migration should stop the
    process is the caller's decision.

    Returns:
        Ok with the head revision ids, or Err with every error message joined.
    """
    path = Path(directory)
    if not (path / "env.py").is_file():
        return Err(f"migrations directory {path} has no env.py")

    config = alembic_config(spec, path)
    # (logger, handler, previous level, previous propagate)
    captured: list[tuple[logging.Logger, BridgeHandler, int, bool]] = []
    if bridge is not None:
        for name in _CAPTURED_LOGGERS:
            target = logging.getLogger(name)
            handler = BridgeHandler(bridge)
            captured.append((target, handler, target.level, target.propagate))
            # INFO records reach the bridge and nothing else while captured
            target.setLevel(logging.INFO)
            target.propagate = False
            target.addHandler(handler)

    try:
        logger.info("Applying migrations from %s", path)
        await asyncio.to_thread(command.upgrade, config, "head")
        heads = list(ScriptDirectory.from_config(config).get_heads())
    except Exception as exc:
        return Err(combine_errors(exc))
    finally:
        for target, handler, level, propagate in captured:
            target.removeHandler(handler)
            target.setLevel(level)
            target.propagate = propagate

    logger.info("Migrations complete, schema at %s", ", ".join(heads) or "base")
    return Ok(heads)
