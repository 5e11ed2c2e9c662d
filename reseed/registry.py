"""
Service registry - the declarative service table and RunPlan construction.

The table below is the only place that knows about individual services.
Procedures in reseed.orchestrator are generic over ServiceDescriptor.

Ordering rules:
- A fixed total order is used (table order).
- The owner of a shared schema always precedes any service that requires it,
  so the owner's drop+migrate completes before the dependent migrates.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from reseed.schemas import MigrationTool, SchemaRef, ServiceDescriptor


CORE_SCHEMA_OWNER = "los-core-api"

SERVICES: tuple[ServiceDescriptor, ...] = (
    ServiceDescriptor(
        name="los-core-api",
        schema_set=(
            SchemaRef("core", "DATABASE_URL", shared=True),
        ),
        migration_tool=MigrationTool.PRISMA,
        seed_command="npm run seed:system",
        environment_scoped=True,
    ),
    ServiceDescriptor(
        name="los-integrations",
        schema_set=(
            # integration user mappings and credentials survive a reset
            SchemaRef("integrations", "DATABASE_URL", resettable=False),
        ),
        migration_tool=MigrationTool.PRISMA,
        seed_command="npm run seed",
        environment_scoped=True,
    ),
    ServiceDescriptor(
        name="sequence-builder-api",
        schema_set=(
            SchemaRef("sequence-builder", "DATABASE_URL"),
        ),
        migration_tool=MigrationTool.PRISMA,
        seed_command="npm run seed",
    ),
    ServiceDescriptor(
        name="ui-builder-api",
        schema_set=(
            SchemaRef("ui-builder", "DATABASE_URL"),
        ),
        migration_tool=MigrationTool.PRISMA,
        seed_command="npm run seed",
    ),
    ServiceDescriptor(
        name="workflow-api",
        schema_set=(
            SchemaRef("workflow-builder", "DATABASE_URL", resettable=False),
        ),
        migration_tool=MigrationTool.TYPEORM,
        seed_command="npm run seed",
    ),
    ServiceDescriptor(
        name="data-builder-api",
        schema_set=(
            SchemaRef(
                "core",
                "CORE_DATABASE_URL",
                location="./prisma-core/schema.prisma",
                shared=True,
                owner=CORE_SCHEMA_OWNER,
                bootstrap_sql='CREATE SCHEMA IF NOT EXISTS "custom"; CREATE SCHEMA IF NOT EXISTS "options_sets";',
            ),
            SchemaRef(
                "data-builder",
                "DATABASE_URL",
                location="./prisma-data-builder/schema.prisma",
            ),
        ),
        migration_tool=MigrationTool.PRISMA,
        seed_command="npm run db:seed:data-builder",
        requires_shared_schema=CORE_SCHEMA_OWNER,
    ),
)


class UnknownServiceError(ValueError):
    """Raised when a service name is not in the table."""
    pass


class PlanError(ValueError):
    """Raised when the table violates an ordering or ownership invariant."""
    pass


def service_names(services: Iterable[ServiceDescriptor] = SERVICES) -> list[str]:
    return [s.name for s in services]


def get_service(name: str, services: Iterable[ServiceDescriptor] = SERVICES) -> ServiceDescriptor:
    """Look up a service by name."""
    for service in services:
        if service.name == name:
            return service
    raise UnknownServiceError(
        f"Unknown service: {name}. Available: {', '.join(service_names(services))}"
    )


@dataclass(frozen=True)
class RunPlan:
    """
    Ordered, read-only execution plan for one run.

    Attributes:
        services: ServiceDescriptors in execution order
        barriers: (owner, dependent) pairs that must run strictly in this order
    """
    services: tuple[ServiceDescriptor, ...]
    barriers: tuple[tuple[str, str], ...] = ()

    def __iter__(self):
        return iter(self.services)

    def __len__(self) -> int:
        return len(self.services)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.services]

    def position(self, name: str) -> int:
        return self.names.index(name)

    def owner_of(self, dependent: str) -> Optional[str]:
        """Owner this dependent must wait for within this plan, if any."""
        for owner, dep in self.barriers:
            if dep == dependent:
                return owner
        return None


def validate_table(services: tuple[ServiceDescriptor, ...]) -> None:
    """
    Check ownership invariants of a service table.

    - Every shared schema has exactly one owner in the table.
    - A service requiring a shared schema names an existing owner that
      declares that schema and precedes it in table order.

    Raises:
        PlanError: If any invariant is violated
    """
    names = [s.name for s in services]
    if len(set(names)) != len(names):
        raise PlanError(f"Duplicate service names in table: {names}")

    owners: dict[str, list[str]] = {}
    for service in services:
        for schema in service.schema_set:
            if schema.shared and schema.owned_by(service.name):
                owners.setdefault(schema.logical_name, []).append(service.name)

    for schema_name, schema_owners in owners.items():
        if len(schema_owners) > 1:
            raise PlanError(
                f"Shared schema '{schema_name}' has more than one owner: {schema_owners}"
            )

    for service in services:
        for schema in service.schema_set:
            if schema.shared and not schema.owned_by(service.name):
                if owners.get(schema.logical_name) != [schema.owner]:
                    raise PlanError(
                        f"{service.name}: shared schema '{schema.logical_name}' names owner "
                        f"{schema.owner}, which does not declare it"
                    )
        if service.requires_shared_schema:
            if service.requires_shared_schema not in names:
                raise PlanError(
                    f"{service.name} requires {service.requires_shared_schema}, which is not in the table"
                )
            if names.index(service.requires_shared_schema) > names.index(service.name):
                raise PlanError(
                    f"{service.requires_shared_schema} must precede {service.name} in table order"
                )


def build_run_plan(
    selected: Optional[Iterable[str]] = None,
    services: tuple[ServiceDescriptor, ...] = SERVICES,
) -> RunPlan:
    """
    Build the RunPlan for a run.

    Args:
        selected: Service names to include (default: all). Order is ignored;
            table order is always used.
        services: Service table (default: SERVICES)

    Returns:
        RunPlan in table order with shared-schema barriers for the
        owner/dependent pairs that are both in scope

    Raises:
        UnknownServiceError: If a selected name is not in the table
        PlanError: If the table violates an ownership invariant
    """
    validate_table(services)

    if selected is None:
        chosen = list(services)
    else:
        wanted = set(selected)
        for name in wanted:
            get_service(name, services)
        chosen = [s for s in services if s.name in wanted]

    in_scope = {s.name for s in chosen}
    barriers = tuple(
        (s.requires_shared_schema, s.name)
        for s in chosen
        if s.requires_shared_schema and s.requires_shared_schema in in_scope
    )
    return RunPlan(services=tuple(chosen), barriers=barriers)
