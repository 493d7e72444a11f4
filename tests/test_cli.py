"""Tests for the command-line interface."""

import json
import zipfile

import click
import pytest
from click.testing import CliRunner
from graphql import print_schema

from gql_session.cli import main, parse_header_options
from gql_session.core import StaticSchemaProvider, UpstreamError

CHARACTER_SCRIPT = {
    "operation_name": "GetCharacter",
    "steps": [
        {"op": "set_query_variable", "variable_name": "$id", "variable_type": "ID!"},
        {"op": "select_field", "field_name": "character"},
        {"op": "set_variable_argument", "field_path": "character", "argument_name": "id", "variable_name": "$id"},
        {"op": "select_field", "field_name": "name", "parent_path": "character"},
        {"op": "set_variable_value", "variable_name": "$id", "value": "1"},
    ],
}


@pytest.fixture
def runner(monkeypatch):
    """CLI runner with no endpoint configured in the environment."""
    for name in ("DEFAULT_GRAPHQL_ENDPOINT", "DEFAULT_GRAPHQL_HEADERS", "REDIS_URL"):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


@pytest.fixture
def schema_file(tmp_path, schema):
    """The test schema written as SDL."""
    path = tmp_path / "schema.graphql"
    path.write_text(print_schema(schema))
    return path


@pytest.fixture
def write_script(tmp_path):
    """Write a script dict to a JSON file and return its path."""

    def _write(script):
        path = tmp_path / "script.json"
        path.write_text(json.dumps(script))
        return str(path)

    return _write


class TestParseHeaderOptions:
    """Tests for -H parsing."""

    def test_parses(self):
        assert parse_header_options(("Authorization: Bearer a:b", "X-Trace:1")) == {
            "Authorization": "Bearer a:b",
            "X-Trace": "1",
        }

    def test_rejects_missing_colon(self):
        with pytest.raises(click.BadParameter):
            parse_header_options(("Authorization",))


class TestRunCommand:
    """Tests for ``gql-session run``."""

    def test_prints_query_and_variables(self, runner, schema_file, write_script):
        result = runner.invoke(main, ["run", write_script(CHARACTER_SCRIPT), "--schema", str(schema_file)])

        assert result.exit_code == 0, result.output
        assert (
            "query GetCharacter($id: ID!) {\n"
            "  character(id: $id) {\n"
            "    name\n"
            "  }\n"
            "}"
        ) in result.output
        assert '"id": "1"' in result.output

    def test_validate(self, runner, schema_file, write_script):
        result = runner.invoke(
            main, ["run", write_script(CHARACTER_SCRIPT), "--schema", str(schema_file), "--validate"]
        )
        assert result.exit_code == 0, result.output
        assert "Query is valid." in result.output

    def test_validation_failure(self, runner, schema_file, write_script):
        script = {"steps": [{"op": "select_field", "field_name": "character"}]}
        result = runner.invoke(main, ["run", write_script(script), "--schema", str(schema_file), "--validate"])

        assert result.exit_code == 1
        assert "Invalid: Required argument 'id' missing for field 'character'" in result.output

    def test_failing_step(self, runner, schema_file, write_script):
        script = {"steps": [
            {"op": "select_field", "field_name": "character"},
            {"op": "select_field", "field_name": "nope"},
        ]}
        result = runner.invoke(main, ["run", write_script(script), "--schema", str(schema_file)])

        assert result.exit_code == 1
        assert "Step 2 (select_field) failed: Field 'nope' not found on type 'Query'." in result.output

    def test_unknown_operation(self, runner, schema_file, write_script):
        script = {"steps": [{"op": "drop_table"}]}
        result = runner.invoke(main, ["run", write_script(script), "--schema", str(schema_file)])

        assert result.exit_code == 1
        assert "Step 1: unknown operation 'drop_table'" in result.output

    def test_schema_archive(self, runner, schema_file, write_script, tmp_path):
        archive = tmp_path / "schema.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.write(schema_file, "nested/schema.graphql")

        result = runner.invoke(main, ["run", write_script(CHARACTER_SCRIPT), "--schema", str(archive)])

        assert result.exit_code == 0, result.output
        assert "character(id: $id)" in result.output

    def test_needs_a_schema_source(self, runner, write_script):
        result = runner.invoke(main, ["run", write_script(CHARACTER_SCRIPT)])
        assert result.exit_code == 2
        assert "Provide --schema or --endpoint" in result.output

    def test_execute_needs_endpoint(self, runner, schema_file, write_script):
        result = runner.invoke(
            main, ["run", write_script(CHARACTER_SCRIPT), "--schema", str(schema_file), "--execute"]
        )
        assert result.exit_code == 2
        assert "--execute needs an endpoint." in result.output


class TestIntrospectCommand:
    """Tests for ``gql-session introspect``."""

    def test_prints_sdl(self, runner, schema, monkeypatch):
        monkeypatch.setattr("gql_session.cli.IntrospectionSchemaProvider", lambda endpoint: StaticSchemaProvider(schema))
        result = runner.invoke(main, ["introspect", "-e", "https://api.example.com/graphql"])

        assert result.exit_code == 0, result.output
        assert "type Character implements Node" in result.output

    def test_writes_file(self, runner, schema, monkeypatch, tmp_path):
        monkeypatch.setattr("gql_session.cli.IntrospectionSchemaProvider", lambda endpoint: StaticSchemaProvider(schema))
        output = tmp_path / "out.graphql"

        result = runner.invoke(main, ["introspect", "-e", "https://api.example.com/graphql", "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert "union SearchResult" in output.read_text()

    def test_upstream_error(self, runner, monkeypatch):
        class Failing:
            def __init__(self, endpoint):
                self.endpoint = endpoint

            async def get_schema(self, headers=None):
                raise UpstreamError("Error processing schema from x: HTTP 401: Unauthorized")

        monkeypatch.setattr("gql_session.cli.IntrospectionSchemaProvider", Failing)
        result = runner.invoke(main, ["introspect", "-e", "https://api.example.com/graphql"])

        assert result.exit_code == 1
        assert "HTTP 401: Unauthorized" in result.output
