"""Options and helpers shared by the CLI commands."""

from typing import Optional

import click

from psa_engine.config.settings import get_config
from psa_engine.store.json_store import JsonFileRecordStore

store_option = click.option(
    "--store",
    "store_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Workspace JSON file (optional, uses STORE_PATH from config)",
)

debug_option = click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Show error context and full stack traces",
)


def open_store(store_path: Optional[str]) -> JsonFileRecordStore:
    """Open the workspace store, falling back to the configured path."""
    return JsonFileRecordStore(store_path or get_config().store_path)
