"""CLI utilities."""

from collections.abc import Iterator
from contextlib import contextmanager

import click

from reeves.config.models import ReevesConfig
from reeves.core.errors import ReevesError
from reeves.store import SignatureStore


def get_config(ctx: click.Context) -> ReevesConfig:
    """Config loaded by the ``reeves`` group."""
    obj = ctx.find_object(dict) or {}
    config = obj.get("config")
    if config is None:
        raise click.ClickException("Configuration not loaded")
    return config


@contextmanager
def reeves_errors() -> Iterator[None]:
    """Report typed errors as a one-line CLI failure instead of a traceback."""
    try:
        yield
    except ReevesError as e:
        raise click.ClickException(str(e)) from e


@contextmanager
def open_store(config: ReevesConfig) -> Iterator[SignatureStore]:
    """Signature store from config, closed on exit."""
    with reeves_errors():
        store = SignatureStore.from_config(config.store)
    try:
        yield store
    finally:
        store.close()
