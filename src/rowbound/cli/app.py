"""Typer CLI for inspecting record mappings."""

from __future__ import annotations

import asyncio
import inspect
from importlib import import_module
from types import ModuleType

import typer

from rowbound.errors import ConfigurationError
from rowbound.logging_setup import configure_logging
from rowbound.records import KeyMapping, Record, key_mapping, registry
from rowbound.storage.sqlite import create_database, create_schema

from .deps import get_settings

app = typer.Typer(help="rowbound command-line interface")


@app.callback()
def main() -> None:
    configure_logging(get_settings().log_level)


def _load_module(name: str) -> ModuleType:
    try:
        return import_module(name)
    except ImportError as exc:
        raise typer.BadParameter(f"cannot import {name!r}: {exc}") from exc


def _record_types(module: ModuleType) -> list[type[Record]]:
    return [
        value
        for _, value in inspect.getmembers(module, inspect.isclass)
        if issubclass(value, Record)
        and value is not Record
        and value.__module__ == module.__name__
        and "table_name" in vars(value)
    ]


def _mappings(module: ModuleType) -> list[KeyMapping]:
    try:
        return [key_mapping(record_type) for record_type in _record_types(module)]
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command("show-settings")
def show_settings() -> None:
    """Print the resolved settings."""

    settings = get_settings()
    typer.echo("Database URL:\t" + settings.database_url)
    typer.echo("Echo SQL:\t" + str(settings.echo_sql))
    typer.echo("Foreign keys:\t" + ("enforced" if settings.enforce_foreign_keys else "off"))
    typer.echo("Prefetch chunk:\t" + str(settings.prefetch_chunk_size))


@app.command("describe")
def describe(module: str) -> None:
    """Print the key mappings and associations declared in MODULE."""

    mappings = _mappings(_load_module(module))
    if not mappings:
        typer.echo(f"No records found in {module}")
        raise typer.Exit(code=1)
    types = {mapping.record_type for mapping in mappings}
    for mapping in mappings:
        typer.echo(f"{mapping.record_type.__name__} -> {mapping.table_name}")
        for column in mapping.columns:
            flags = []
            if column.name in mapping.primary_key:
                flags.append("pk")
            if column.nullable and column.name not in mapping.primary_key:
                flags.append("null")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            typer.echo(f"  {column.name}: {column.sql_type}{suffix}")
        for fk in mapping.foreign_keys:
            target = f"{fk.target.table_name}({', '.join(fk.target_columns)})"
            typer.echo(f"  fk ({', '.join(fk.columns)}) -> {target}")
    for association in registry.associations():
        if association.owner in types and "__" not in association.name:
            typer.echo(repr(association))


@app.command("create-schema")
def create_schema_command(
    module: str,
    database_url: str | None = typer.Option(None, help="Overrides ROWBOUND_DATABASE_URL"),
) -> None:
    """Create the tables of the records declared in MODULE."""

    mappings = _mappings(_load_module(module))
    database = create_database(database_url, settings=get_settings())

    async def _run() -> None:
        try:
            await create_schema(database, [mapping.record_type for mapping in mappings])
        finally:
            await database.dispose()

    asyncio.run(_run())
    typer.echo(f"Created {len(mappings)} table(s)")


__all__ = ["app"]
