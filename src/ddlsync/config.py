"""
Configuration system for ddlsync using Pydantic.
"""

import os
import re
from pathlib import Path
from typing import Annotated, Any, List, Literal, Optional, Tuple, Type, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .database.connection import ConnectionConfig
from .exceptions import ConfigurationError
from .tables import default_schema
from .schema.model import (
    CheckConstraint,
    ColumnDefinition,
    ColumnType,
    IndexConstraint,
    ReferenceConstraint,
    SchemaModel,
    TableDefinition,
    UniqueConstraint,
    UniqueLowerConstraint,
)


ENV_REF = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _expand_env(value: Any) -> Any:
    """Substitute ``${VAR}`` references in every string of a loaded YAML tree."""
    if isinstance(value, str):
        return ENV_REF.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) if m.group(2) is not None else m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value


class DatabaseSettings(BaseModel):
    """Database connection configuration."""

    url: Optional[str] = Field(None, description="postgresql:// connection URL")
    host: str = Field("localhost", description="Database host")
    port: int = Field(5432, description="Database port")
    database: Optional[str] = Field(None, description="Database name")
    user: str = Field("postgres", description="Database user")
    password: str = Field("", description="Database password")
    ssl_mode: Optional[str] = Field(None, description="SSL mode")
    min_size: int = Field(1, description="Minimum connections in pool")
    max_size: int = Field(5, description="Maximum connections in pool")
    command_timeout: float = Field(60.0, description="Command timeout in seconds")
    acquire_timeout: float = Field(10.0, description="Connection acquire timeout in seconds")

    def to_connection_config(self) -> ConnectionConfig:
        """Build the pool configuration, preferring ``url`` when set."""
        pool_settings = self.model_dump(
            include={"min_size", "max_size", "command_timeout", "acquire_timeout"}
        )
        if self.url:
            if self.ssl_mode:
                pool_settings["ssl_mode"] = self.ssl_mode
            return ConnectionConfig.from_url(self.url, **pool_settings)

        if not self.database:
            raise ConfigurationError("Database name or url is required")

        target = self.model_dump(include={"host", "port", "database", "user", "password", "ssl_mode"})
        return ConnectionConfig(**target, **pool_settings)


class ColumnConfig(BaseModel):
    """A declared column."""

    name: str = Field(..., description="Column name")
    type: ColumnType = Field(..., description="Logical column type")
    primary: bool = Field(False, description="Primary key column")
    unique: bool = Field(False, description="Informational unique flag")
    nullable: bool = Field(True, description="Whether NULL is allowed")
    char_limit: Optional[int] = Field(None, description="Length for VARCHAR/CHARACTER")
    default: Optional[Union[bool, int, float, str]] = Field(
        None, description="Default value; NOW() for insertion time"
    )
    description: Optional[str] = Field(None, description="Free-form description")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def to_definition(self) -> ColumnDefinition:
        return ColumnDefinition(
            name=self.name,
            type=self.type,
            primary=self.primary,
            unique=self.unique,
            nullable=self.nullable,
            char_limit=self.char_limit,
            default=self.default,
            description=self.description,
        )


class ReferenceConstraintConfig(BaseModel):
    type: Literal["ref"]
    column: str = Field(..., description="Local column")
    table: str = Field(..., description="Referenced table")
    target_column: Optional[str] = Field(
        None, description="Referenced column, defaults to the target's primary key"
    )
    cascade: bool = Field(False, description="ON DELETE CASCADE")

    def to_definition(self) -> ReferenceConstraint:
        return ReferenceConstraint(self.column, self.table, self.target_column, self.cascade)


class UniqueConstraintConfig(BaseModel):
    type: Literal["unique"]
    columns: List[str] = Field(..., min_length=1)

    def to_definition(self) -> UniqueConstraint:
        return UniqueConstraint(tuple(self.columns))


class UniqueLowerConstraintConfig(BaseModel):
    type: Literal["unique_lower"]
    columns: List[str] = Field(..., min_length=1)

    def to_definition(self) -> UniqueLowerConstraint:
        return UniqueLowerConstraint(tuple(self.columns))


class CheckConstraintConfig(BaseModel):
    type: Literal["check"]
    expression: str = Field(..., description="SQL boolean predicate")

    def to_definition(self) -> CheckConstraint:
        return CheckConstraint(self.expression)


class IndexConstraintConfig(BaseModel):
    type: Literal["index"]
    columns: List[str] = Field(..., min_length=1)
    name: Optional[str] = Field(None, description="Explicit index name")

    def to_definition(self) -> IndexConstraint:
        return IndexConstraint(tuple(self.columns), self.name)


ConstraintConfig = Annotated[
    Union[
        ReferenceConstraintConfig,
        UniqueConstraintConfig,
        UniqueLowerConstraintConfig,
        CheckConstraintConfig,
        IndexConstraintConfig,
    ],
    Field(discriminator="type"),
]


class TableConfig(BaseModel):
    """A declared table."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Table name")
    schema_name: str = Field("public", alias="schema", description="Database schema")
    columns: List[ColumnConfig] = Field(..., min_length=1)
    constraints: List[ConstraintConfig] = Field(default_factory=list)
    indexes: List[List[str]] = Field(default_factory=list)
    seeds: List[str] = Field(default_factory=list, description="Idempotent seed statements")

    def to_definition(self) -> TableDefinition:
        return TableDefinition(
            name=self.name,
            columns=tuple(col.to_definition() for col in self.columns),
            constraints=tuple(c.to_definition() for c in self.constraints),
            indexes=tuple(tuple(cols) for cols in self.indexes),
            seeds=tuple(self.seeds),
            schema=self.schema_name,
        )


class ReconcileSettings(BaseModel):
    """Reconciliation behaviour."""

    fix_constraints: bool = Field(
        False, description="Drop and re-create foreign key and unique constraints"
    )
    dry_run: bool = Field(False, description="Log statements without executing them")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")
    max_size: int = Field(10485760, description="Max log file size in bytes")  # 10MB
    backup_count: int = Field(5, description="Number of backup log files")


class DdlsyncConfig(BaseSettings):
    """Main ddlsync configuration."""

    service_name: str = Field("ddlsync", description="Service name")
    debug: bool = Field(False, description="Enable debug mode")

    database: Optional[DatabaseSettings] = Field(None, description="Target database")
    reconcile: ReconcileSettings = Field(
        default_factory=ReconcileSettings, description="Reconciliation settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    tables: List[TableConfig] = Field(
        default_factory=list,
        description="Declared tables in dependency order; empty uses the built-in schema",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DDLSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # DDLSYNC_* variables win over values loaded from the YAML file.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "DdlsyncConfig":
        """
        Load configuration from a YAML file.

        ``${VAR}`` and ``${VAR:-fallback}`` in string values are replaced from
        the environment; unset variables without a fallback are left as written.
        Environment settings (``DDLSYNC_*``) still apply on top of the file.
        """
        try:
            raw = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {path}") from e

        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

        try:
            return cls(**_expand_env(data))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def schema_model(self) -> SchemaModel:
        """
        Build the schema model from the declared tables.

        Raises:
            SchemaDefinitionError: if the declared tables are inconsistent.
        """
        if not self.tables:
            return default_schema()
        return SchemaModel(table.to_definition() for table in self.tables)

    def connection_config(self) -> ConnectionConfig:
        """Pool configuration for the target database."""
        if self.database is None:
            raise ConfigurationError("No database configured")
        return self.database.to_connection_config()

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Write the configuration as YAML, omitting unset values."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                self.model_dump(mode="json", exclude_none=True, by_alias=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )
