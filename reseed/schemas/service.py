"""
Service schemas - the static description of each backend service.

ServiceDescriptor and SchemaRef are pure data. The reset procedure is generic
logic that reads them; adding a service means adding a table row in
reseed.registry, not new control flow.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class MigrationTool(str, Enum):
    """ORM family that owns a service's migrations."""
    PRISMA = "prisma"
    TYPEORM = "typeorm"

    def apply_command(self, location: Optional[str] = None) -> str:
        """Apply pending migrations (non-destructive)."""
        if self == MigrationTool.PRISMA:
            return _with_schema("npx prisma migrate deploy", location)
        return "npm run db:run-migrations"

    def reset_command(self, location: Optional[str] = None) -> str:
        """Drop the schema back to empty. Destructive; local workspace flow only."""
        if self == MigrationTool.PRISMA:
            return _with_schema("npx prisma migrate reset --force --skip-seed", location)
        return "npm run typeorm -- schema:drop"

    def generate_command(self, location: Optional[str] = None) -> Optional[str]:
        """Client generation step, if the tool has one."""
        if self == MigrationTool.PRISMA:
            return _with_schema("npx prisma generate", location)
        return None

    def reachability_command(self) -> str:
        """Succeeds when the tool's CLI is installed in the execution context."""
        if self == MigrationTool.PRISMA:
            return "which prisma || test -f node_modules/.bin/prisma"
        return "test -f node_modules/.bin/typeorm"

    def probe_command(self, location: Optional[str] = None) -> str:
        """One trivial read against the datastore."""
        if self == MigrationTool.PRISMA:
            return "echo 'SELECT 1' | " + _with_schema("npx prisma db execute --stdin", location)
        return "npm run typeorm -- query 'SELECT 1'"

    def execute_sql_command(self, sql: str, location: Optional[str] = None) -> str:
        """Run a raw SQL statement through the tool."""
        quoted = sql.replace("'", "'\"'\"'")
        if self == MigrationTool.PRISMA:
            return f"echo '{quoted}' | " + _with_schema("npx prisma db execute --stdin", location)
        return f"npm run typeorm -- query '{quoted}'"


def _with_schema(command: str, location: Optional[str]) -> str:
    if location:
        return f"{command} --schema={location}"
    return command


@dataclass(frozen=True)
class SchemaRef:
    """
    Exactly one migratable unit.

    Attributes:
        logical_name: Name of the schema (e.g. "core", "data-builder")
        connection_env: Environment variable carrying its connection URL
        location: Schema file / migrations path passed to the tool (None = tool default)
        shared: True if more than one service migrates against this schema
        owner: Service allowed to drop it. None means the declaring service owns it.
        bootstrap_sql: Idempotent SQL run before migrations (failures are warnings)
        resettable: False if the local flow must never drop it, even for its owner
    """
    logical_name: str
    connection_env: str = "DATABASE_URL"
    location: Optional[str] = None
    shared: bool = False
    owner: Optional[str] = None
    bootstrap_sql: Optional[str] = None
    resettable: bool = True

    def owned_by(self, service_name: str) -> bool:
        """True if service_name owns this schema."""
        return self.owner is None or self.owner == service_name

    def droppable_by(self, service_name: str) -> bool:
        """True if service_name may perform a destructive reset of this schema."""
        return self.resettable and self.owned_by(service_name)


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Static configuration of one backend service.

    Attributes:
        name: Service name; also the pod label value and workspace directory name
        schema_set: Ordered schemas, migrated in declared order
        migration_tool: ORM family
        seed_command: The service's own seed entry point
        requires_shared_schema: Name of the service that owns a shared schema this one uses
        environment_scoped: True if credentials differ per environment; False if the
            service lives in the shared "workflows" environment
        setup_commands: Extra local-mode preparation commands (before generation)
    """
    name: str
    schema_set: tuple[SchemaRef, ...]
    migration_tool: MigrationTool
    seed_command: str
    requires_shared_schema: Optional[str] = None
    environment_scoped: bool = False
    setup_commands: tuple[str, ...] = field(default=("npm install --no-audit --no-fund",))

    def __post_init__(self):
        if not self.schema_set:
            raise ValueError(f"Service {self.name} declares no schemas")
        names = [s.logical_name for s in self.schema_set]
        if len(set(names)) != len(names):
            raise ValueError(f"Service {self.name} declares duplicate schemas: {names}")
        for schema in self.schema_set:
            if schema.owner and schema.owner != self.name and self.requires_shared_schema != schema.owner:
                raise ValueError(
                    f"Service {self.name}: schema '{schema.logical_name}' is owned by "
                    f"{schema.owner} but requires_shared_schema is {self.requires_shared_schema!r}"
                )

    @property
    def required_keys(self) -> tuple[str, ...]:
        """Configuration keys that must be present, one per distinct connection."""
        keys: list[str] = []
        for schema in self.schema_set:
            if schema.connection_env not in keys:
                keys.append(schema.connection_env)
        return tuple(keys)

    def owned_schemas(self) -> tuple[SchemaRef, ...]:
        """Schemas this service may drop."""
        return tuple(s for s in self.schema_set if s.owned_by(self.name))

    @property
    def primary_schema(self) -> SchemaRef:
        """The service's own datastore: its first owned schema, else its first schema."""
        owned = self.owned_schemas()
        return owned[0] if owned else self.schema_set[0]
