"""Local schema loading using graphql-core.

Reads SDL from a file or a directory of ``.graphql``/``.graphqls`` files,
or a saved introspection result (``.json``), and builds a GraphQLSchema.
"""

import json
import logging
import os

from graphql import GraphQLSchema, build_client_schema, build_schema

logger = logging.getLogger(__name__)

SDL_EXTENSIONS = (".graphql", ".graphqls", ".gql")


class SchemaLoader:
    """Builds a schema from files on disk."""

    def __init__(self, schema_path: str):
        """Initialize a loader with a path to a schema file or directory."""
        self.schema_path = schema_path

    def load(self) -> GraphQLSchema:
        """Load and build the schema.

        Raises:
            FileNotFoundError: If no schema files are found
            graphql.GraphQLError: If the SDL does not parse or build
        """
        if os.path.isfile(self.schema_path) and self.schema_path.endswith(".json"):
            return self._load_introspection(self.schema_path)

        schema_files = self._collect_schema_files()
        if not schema_files:
            raise FileNotFoundError(f"No schema files found at {self.schema_path}")

        sources = []
        for file_path in schema_files:
            with open(file_path) as f:
                sources.append(f.read())
        logger.debug("Building schema from %d file(s)", len(schema_files))
        return build_schema("\n\n".join(sources))

    def _collect_schema_files(self) -> list[str]:
        """Collect all SDL files from path."""
        files = []
        if os.path.isfile(self.schema_path):
            if self.schema_path.endswith(SDL_EXTENSIONS):
                files.append(self.schema_path)
        else:
            for root, _, filenames in os.walk(self.schema_path):
                for filename in filenames:
                    if filename.endswith(SDL_EXTENSIONS):
                        files.append(os.path.join(root, filename))
        return sorted(files)

    def _load_introspection(self, file_path: str) -> GraphQLSchema:
        with open(file_path) as f:
            result = json.load(f)
        # Accept both {"data": {"__schema": ...}} and {"__schema": ...}
        data = result.get("data", result)
        return build_client_schema(data)


def load_schema(schema_path: str) -> GraphQLSchema:
    return SchemaLoader(schema_path).load()
