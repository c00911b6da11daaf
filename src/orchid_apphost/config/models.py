"""Typed configuration models with Pydantic validation."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator


class ServiceSettings(BaseModel):
    """Service identification."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="orchid-apphost", min_length=1, description="Service name")
    version: str = Field(default="1.0.0", min_length=1, description="Service version")


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    format: Literal["json", "text"] = Field(default="json", description="Log output format")
    sampling: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Optional sampling ratio for low-severity logs",
    )


class ObservabilitySettings(BaseModel):
    """Metrics and tracing switches."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Enable observability")
    metrics_enabled: bool = Field(
        default=False,
        description="Record Prometheus metrics (requires the observability extra)",
    )
    metrics_prefix: str = Field(default="apphost", min_length=1, description="Metric name prefix")
    service_name: str | None = Field(default=None, description="Override service name for traces")


class OrchestratorSettings(BaseModel):
    """Readiness polling and start deadline."""

    model_config = ConfigDict(frozen=True)

    readiness_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Default time a resource has to become ready after its start action",
    )
    poll_initial_interval_seconds: float = Field(
        default=0.1,
        gt=0.0,
        description="First pause between failed readiness probes",
    )
    poll_max_interval_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="Upper bound for the pause between readiness probes",
    )
    poll_backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Growth factor applied to the probe pause after each failure",
    )
    deadline_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Overall start deadline; resources still starting are cancelled",
    )

    @model_validator(mode="after")
    def validate_intervals(self) -> OrchestratorSettings:
        if self.poll_max_interval_seconds < self.poll_initial_interval_seconds:
            raise ValueError(
                "poll_max_interval_seconds must be >= poll_initial_interval_seconds"
            )
        return self


class CacheSettings(BaseModel):
    """Redis cache resource."""

    model_config = ConfigDict(frozen=True)

    url: SecretStr = Field(
        default=SecretStr("redis://localhost:6379/0"),
        min_length=1,
        description="Redis connection URL",
    )
    key_prefix: str = Field(default="", description="Optional key prefix")
    socket_timeout_seconds: float | None = Field(
        default=5.0,
        gt=0.0,
        description="Read/write socket timeout in seconds",
    )
    connect_timeout_seconds: float | None = Field(
        default=5.0,
        gt=0.0,
        description="Socket connect timeout in seconds",
    )
    start_command: list[str] | None = Field(
        default=None,
        description="Command that provisions the cache (e.g. docker run ...)",
    )
    stop_command: list[str] | None = Field(
        default=None,
        description="Command that removes what start_command provisioned (e.g. docker rm -f ...)",
    )
    readiness_timeout_seconds: float | None = Field(default=None, gt=0.0)


class AccountsStoreSettings(BaseModel):
    """DynamoDB (Local) document store backing the accounts table."""

    model_config = ConfigDict(frozen=True)

    endpoint_url: str | None = Field(
        default="http://localhost:8000",
        description="DynamoDB endpoint; None targets the regional AWS endpoint",
    )
    region: str = Field(default="us-west-2", min_length=1, description="AWS region")
    access_key_id: SecretStr | None = Field(default=None, description="AWS access key id")
    secret_access_key: SecretStr | None = Field(default=None, description="AWS secret key")
    table_name: str = Field(default="Accounts", min_length=1, description="Accounts table name")
    start_command: list[str] | None = Field(
        default=None,
        description="Command that provisions DynamoDB Local (e.g. docker run ...)",
    )
    stop_command: list[str] | None = Field(
        default=None,
        description="Command that removes what start_command provisioned",
    )
    readiness_timeout_seconds: float | None = Field(default=None, gt=0.0)


class GatewaySettings(BaseModel):
    """HTTP API gateway emulator in front of the add function."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8080, ge=0, le=65535, description="Bind port (0 picks a free port)")
    route: str = Field(default="/add/{x}/{y}", min_length=1, description="Function route")
    readiness_timeout_seconds: float | None = Field(default=None, gt=0.0)


class ResourceSettings(BaseModel):
    """Resources started by the app host."""

    model_config = ConfigDict(frozen=True)

    cache: CacheSettings = Field(default_factory=CacheSettings)
    accounts: AccountsStoreSettings = Field(default_factory=AccountsStoreSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)


class FunctionSettings(BaseModel):
    """Add function behaviour."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="AddFunctionHandler", min_length=1, description="Function name")
    echo_url: str = Field(
        default="https://httpbin.org/get",
        min_length=1,
        description="URL called on every invocation to exercise outbound HTTP",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for the outbound echo request",
    )


class TestConfiguration(BaseModel):
    """Values echoed back by the function to show configuration reached it."""

    __test__ = False

    model_config = ConfigDict(frozen=True)

    test_attribute: str = Field(default="Default Value", description="Free-form test value")
    environment: str = Field(default="Unknown", description="Environment label")
    version: str = Field(default="1.0.0", description="Configuration version label")


class AppHostSettings(BaseModel):
    """Root app host settings."""

    model_config = ConfigDict(frozen=True)

    service: ServiceSettings = Field(default_factory=ServiceSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    resources: ResourceSettings = Field(default_factory=ResourceSettings)
    function: FunctionSettings = Field(default_factory=FunctionSettings)
    test_configuration: TestConfiguration = Field(default_factory=TestConfiguration)
