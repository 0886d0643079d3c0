"""Data-tier presets for shipwright.

Immutable registry of the data stores the pipeline knows how to deploy as
its dependency tier. Each ``DataTierPreset`` carries the pinned image, the
service port, the in-container readiness command, the mapping from
credential fields to the engine's environment variables, and the JDBC URL
template the application tier uses to reach it.

Key Concepts:
    DataTierPreset: Frozen dataclass, one per database engine.
    DATA_TIERS: Registry dict mapping name → DataTierPreset.
    get_data_tier_preset: Case-insensitive lookup (``"MySQL"`` works).

Architecture Decisions:
    - Frozen dataclasses (not Pydantic): presets are constants, not user
      input. User-facing overrides live on ``DataTierParams`` in config.
    - ``credential_env`` maps env var → credential field name
      (``database``, ``username``, ``password``, ``root_password``), so the
      renderer can emit ``secretKeyRef`` entries without ever seeing values.
    - Readiness commands read credentials from the container environment
      rather than embedding them in the manifest.

Related Modules:
    - :mod:`shipwright.deploy.config` — DataTierParams references presets by name
    - :mod:`shipwright.deploy.manifests` — Renders presets into documents

Tags:
    data-tier, database, presets, registry, shipwright
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DataTierPreset:
    """Specification for a data-store container in the dependency tier."""

    name: str
    """Short name (e.g., 'mysql')."""

    image: str
    """Container image with pinned tag."""

    port: int
    """Port the data store listens on inside the pod."""

    readiness_command: list[str]
    """Exec probe command run inside the container."""

    credential_env: dict[str, str]
    """Environment variable name → credential field name."""

    data_mount_path: str
    """Where the persistent volume claim is mounted."""

    jdbc_url_template: str
    """URL template with {host}, {port}, {database} placeholders."""

    default_database: str = "petclinic"
    default_username: str = "petclinic"
    extra_env: dict[str, str] = field(default_factory=dict)
    notes: str = ""

    def jdbc_url(self, host: str, database: str, port: int | None = None) -> str:
        """Datasource URL for a client inside the cluster."""
        return self.jdbc_url_template.format(host=host, port=port or self.port, database=database)


# ---------------------------------------------------------------------------
# Pre-defined data tiers
# ---------------------------------------------------------------------------

MYSQL = DataTierPreset(
    name="mysql",
    image="mysql:8.1",
    port=3306,
    readiness_command=["mysqladmin", "ping", "-h", "localhost"],
    credential_env={
        "MYSQL_ROOT_PASSWORD": "root_password",
        "MYSQL_DATABASE": "database",
        "MYSQL_USER": "username",
        "MYSQL_PASSWORD": "password",
    },
    data_mount_path="/var/lib/mysql",
    jdbc_url_template="jdbc:mysql://{host}:{port}/{database}",
)

POSTGRESQL = DataTierPreset(
    name="postgresql",
    image="postgres:15.4",
    port=5432,
    readiness_command=["sh", "-c", 'pg_isready -U "$POSTGRES_USER" -d "$POSTGRES_DB"'],
    credential_env={
        "POSTGRES_DB": "database",
        "POSTGRES_USER": "username",
        "POSTGRES_PASSWORD": "password",
    },
    data_mount_path="/var/lib/postgresql/data",
    jdbc_url_template="jdbc:postgresql://{host}:{port}/{database}",
    # initdb refuses a non-empty mount root (lost+found)
    extra_env={"PGDATA": "/var/lib/postgresql/data/pgdata"},
    notes="Has no root password; root_password is ignored.",
)

DATA_TIERS: dict[str, DataTierPreset] = {
    "mysql": MYSQL,
    "postgresql": POSTGRESQL,
}


def get_data_tier_preset(name: str) -> DataTierPreset | None:
    """Look up a data-tier preset by name (case-insensitive)."""
    return DATA_TIERS.get(name.lower())


def list_data_tier_presets() -> list[DataTierPreset]:
    return list(DATA_TIERS.values())
