"""Command-line interface for gql-session."""

import asyncio
import json
import logging
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Any

import click
from graphql import print_schema

from .core.config import BuilderSettings
from .core.errors import QueryBuilderError
from .core.schema import IntrospectionSchemaProvider, StaticSchemaProvider
from .core.service import QueryBuilderService
from .core.store import MemorySessionStore

# Operations a script step may name
SCRIPT_OPERATIONS = frozenset({
    "select_field",
    "select_multiple_fields",
    "set_typed_argument",
    "set_string_argument",
    "set_variable_argument",
    "set_input_object_argument",
    "set_field_directive",
    "set_operation_directive",
    "set_query_variable",
    "set_variable_value",
    "remove_query_variable",
    "define_named_fragment",
    "apply_named_fragment",
    "apply_inline_fragment",
})


def extract_archive(archive_path: Path) -> str:
    """Extract archive to temp directory. Returns path to extracted content."""
    temp_dir = tempfile.mkdtemp()
    if archive_path.suffix == ".zip":
        with zipfile.ZipFile(archive_path, "r") as zip_ref:
            zip_ref.extractall(temp_dir)
    elif archive_path.name.endswith((".tar.gz", ".tgz")):
        with tarfile.open(archive_path, "r:gz") as tar_ref:
            tar_ref.extractall(temp_dir)
    else:
        shutil.rmtree(temp_dir)
        raise ValueError(f"Unsupported archive format: {archive_path.suffix}")
    return temp_dir


def configure_logging(verbose: bool, level: str = "WARNING") -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_header_options(values: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated ``-H "Name: value"`` options into a dict."""
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"Expected 'Name: value', got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


async def run_script(
    service: QueryBuilderService,
    script: dict[str, Any],
    *,
    validate: bool = False,
    execute: bool = False,
    verbose: bool = False,
) -> dict[str, Any]:
    """Run a builder script in a fresh session and return the final query record.

    Raises:
        click.ClickException: If any step fails
    """
    started = await service.start_query_session(
        operation_type=script.get("operation_type", "query"),
        operation_name=script.get("operation_name"),
        headers=script.get("headers"),
    )
    if "error" in started:
        raise click.ClickException(f"Could not start session: {started['error']}")
    session_id = started["session_id"]

    try:
        for index, step in enumerate(script.get("steps", []), start=1):
            params = dict(step)
            op = params.pop("op", None)
            if op not in SCRIPT_OPERATIONS:
                raise click.ClickException(f"Step {index}: unknown operation {op!r}")
            result = await getattr(service, op)(session_id, **params)
            if "error" in result:
                raise click.ClickException(f"Step {index} ({op}) failed: {result['error']}")
            if verbose:
                click.echo(f"  [{index}] {result['message']}", err=True)

        output = await service.get_current_query(session_id)
        if validate:
            output["validation"] = await service.validate_query(session_id)
        if execute:
            output["execution"] = await service.execute_query(session_id)
        return output
    finally:
        await service.end_query_session(session_id)


@click.group()
@click.version_option(package_name="gql-session")
def main():
    """Build GraphQL queries step by step, checked against a schema.

    Run scripted builder sessions or fetch a remote schema as SDL.
    """
    pass


@main.command()
@click.option(
    "--endpoint",
    "-e",
    required=True,
    help="GraphQL endpoint URL.",
)
@click.option(
    "--header",
    "-H",
    multiple=True,
    help='Request header as "Name: value". Repeatable.',
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    help="Write the SDL to this file instead of stdout.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output.",
)
def introspect(endpoint: str, header: tuple[str, ...], output: str | None, verbose: bool):
    """Fetch a schema by introspection and print it as SDL.

    Examples:

        gql-session introspect -e https://rickandmortyapi.com/graphql

        gql-session introspect -e https://api.example.com/graphql -H "Authorization: Bearer x" -o schema.graphql
    """
    configure_logging(verbose)
    headers = parse_header_options(header)
    provider = IntrospectionSchemaProvider(endpoint)
    try:
        schema = asyncio.run(provider.get_schema(headers))
    except QueryBuilderError as e:
        raise click.ClickException(e.message) from e

    sdl = print_schema(schema)
    if output:
        Path(output).write_text(sdl + "\n")
        click.echo(f"Done! Wrote schema to {output}")
    else:
        click.echo(sdl)


@main.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--schema",
    "-s",
    type=click.Path(exists=True),
    help="Schema file, directory, archive (.zip, .tar.gz, .tgz) or introspection JSON.",
)
@click.option(
    "--endpoint",
    "-e",
    help="GraphQL endpoint URL (defaults to DEFAULT_GRAPHQL_ENDPOINT).",
)
@click.option(
    "--header",
    "-H",
    multiple=True,
    help='Request header as "Name: value". Repeatable.',
)
@click.option("--validate", "validate_flag", is_flag=True, help="Validate the finished query.")
@click.option("--execute", "execute_flag", is_flag=True, help="Execute the finished query.")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output.",
)
def run(
    script: str,
    schema: str | None,
    endpoint: str | None,
    header: tuple[str, ...],
    validate_flag: bool,
    execute_flag: bool,
    verbose: bool,
):
    """Run a JSON builder script and print the resulting query.

    A script looks like:

    \b
        {"operation_type": "query",
         "steps": [{"op": "select_field", "field_name": "characters"},
                   {"op": "select_field", "parent_path": "characters", "field_name": "results"}]}

    Examples:

        gql-session run build.json --schema ./schema.graphql --validate

        gql-session run build.json -e https://rickandmortyapi.com/graphql --execute
    """
    env_settings = BuilderSettings.from_env()
    configure_logging(verbose, env_settings.log_level)
    endpoint = endpoint or env_settings.endpoint
    if not schema and not endpoint:
        raise click.UsageError("Provide --schema or --endpoint (or set DEFAULT_GRAPHQL_ENDPOINT).")
    if execute_flag and not endpoint:
        raise click.UsageError("--execute needs an endpoint.")

    try:
        steps = json.loads(Path(script).read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid script {script}: {e}") from e

    headers = {**env_settings.default_headers, **parse_header_options(header)}
    try:
        settings = BuilderSettings(**{**env_settings.model_dump(), "endpoint": endpoint, "default_headers": headers})
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--header") from e

    temp_dir = None
    try:
        if schema:
            schema_path = Path(schema).resolve()
            if schema_path.is_file() and schema_path.name.lower().endswith((".zip", ".tar.gz", ".tgz")):
                temp_dir = extract_archive(schema_path)
                schema_path = Path(temp_dir)
            provider = StaticSchemaProvider.from_path(str(schema_path))
        else:
            provider = IntrospectionSchemaProvider(endpoint, timeout=settings.schema_timeout)

        service = QueryBuilderService(MemorySessionStore(), provider, settings)

        async def _run() -> dict[str, Any]:
            try:
                return await run_script(
                    service, steps, validate=validate_flag, execute=execute_flag, verbose=verbose
                )
            finally:
                await service.close()

        output = asyncio.run(_run())
    finally:
        if temp_dir:
            shutil.rmtree(temp_dir)

    click.echo(output["query_string"])
    if output.get("variables_values"):
        click.echo("\nVariables:")
        click.echo(json.dumps({k.lstrip("$"): v for k, v in output["variables_values"].items()}, indent=2))
    for warning in output.get("warnings", []):
        click.echo(f"Warning: {warning}", err=True)

    validation = output.get("validation")
    if validation is not None:
        if "error" in validation:
            raise click.ClickException(validation["error"])
        if not validation["valid"]:
            for error in validation["errors"]:
                click.echo(f"Invalid: {error}", err=True)
            raise SystemExit(1)
        click.echo("\nQuery is valid.")

    execution = output.get("execution")
    if execution is not None:
        if "error" in execution:
            raise click.ClickException(execution["error"])
        click.echo("\nResult:")
        click.echo(json.dumps({"data": execution["data"], "errors": execution["errors"]}, indent=2))


if __name__ == "__main__":
    main()
