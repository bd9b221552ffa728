"""Centralized deployer settings using pydantic-settings.

This module provides the defaults for every deployment invocation, loaded
from environment variables. Command line flags override these values when
the CLI builds the explicit ``DeploymentConfig`` for a run.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from keycloak_deployer import constants


class Settings(BaseSettings):
    """Deployer configuration loaded from environment variables.

    All settings have defaults matching the shipped manifests. Override via
    environment variables as documented per field.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Release identification
    namespace: str = Field(
        default=constants.DEFAULT_NAMESPACE,
        description="Kubernetes namespace for the Keycloak release",
        validation_alias="KEYCLOAK_DEPLOYER_NAMESPACE",
    )
    release_name: str = Field(
        default=constants.DEFAULT_RELEASE_NAME,
        description="Helm release name",
        validation_alias="KEYCLOAK_DEPLOYER_RELEASE",
    )
    chart_ref: str = Field(
        default=constants.DEFAULT_CHART_REF,
        description="Helm chart reference (repo/chart or local path)",
        validation_alias="KEYCLOAK_DEPLOYER_CHART",
    )
    chart_version: str = Field(
        default="",
        description="Helm chart version (empty = latest)",
        validation_alias="KEYCLOAK_DEPLOYER_CHART_VERSION",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=False,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for run tracing",
    )

    # Manifest locations
    values_file: str = Field(
        default=constants.DEFAULT_VALUES_FILE,
        validation_alias="KEYCLOAK_DEPLOYER_VALUES_FILE",
        description="Helm values template, patched per run (never modified)",
    )
    db_secret_file: str = Field(
        default=constants.DEFAULT_DB_SECRET_FILE,
        validation_alias="KEYCLOAK_DEPLOYER_DB_SECRET_FILE",
        description="Manifest of the database credentials secret",
    )
    certificate_file: str = Field(
        default=constants.DEFAULT_CERTIFICATE_FILE,
        validation_alias="KEYCLOAK_DEPLOYER_CERTIFICATE_FILE",
        description="ManagedCertificate manifest template",
    )
    certificate_name: str = Field(
        default=constants.DEFAULT_CERTIFICATE_NAME,
        validation_alias="KEYCLOAK_DEPLOYER_CERTIFICATE_NAME",
        description="Name of the ManagedCertificate resource",
    )

    # Realm injection
    realm_template_file: str = Field(
        default=constants.DEFAULT_REALM_TEMPLATE_FILE,
        validation_alias="KEYCLOAK_DEPLOYER_REALM_TEMPLATE",
        description="ConfigMap template holding the realm anchor line",
    )
    realm_payload_file: str = Field(
        default=constants.DEFAULT_REALM_PAYLOAD_FILE,
        validation_alias="KEYCLOAK_DEPLOYER_REALM_PAYLOAD",
        description="Realm JSON spliced under the anchor",
    )
    realm_output_file: str = Field(
        default=constants.DEFAULT_REALM_OUTPUT_FILE,
        validation_alias="KEYCLOAK_DEPLOYER_REALM_OUTPUT",
        description="Derived realm ConfigMap manifest",
    )
    realm_json_key: str = Field(
        default=constants.DEFAULT_REALM_JSON_KEY,
        validation_alias="KEYCLOAK_DEPLOYER_REALM_KEY",
        description="ConfigMap data key that receives the realm JSON",
    )
    injection_indent: str = Field(
        default=constants.DEFAULT_INJECTION_INDENT,
        validation_alias="KEYCLOAK_DEPLOYER_INJECTION_INDENT",
        description="Prefix applied to every injected payload line",
    )

    # Convergence
    workload_kind: str = Field(
        default=constants.DEFAULT_WORKLOAD_KIND,
        validation_alias="KEYCLOAK_DEPLOYER_WORKLOAD_KIND",
        description="Workload kind polled for rollout (StatefulSet or Deployment)",
    )
    rollout_timeout_seconds: float = Field(
        default=constants.DEFAULT_ROLLOUT_TIMEOUT_SECONDS,
        validation_alias="KEYCLOAK_DEPLOYER_ROLLOUT_TIMEOUT",
        description="Upper bound in seconds for the rollout convergence poll",
    )
    rollout_poll_interval_seconds: float = Field(
        default=constants.DEFAULT_ROLLOUT_POLL_INTERVAL_SECONDS,
        validation_alias="KEYCLOAK_DEPLOYER_ROLLOUT_INTERVAL",
        description="Seconds between rollout status checks",
    )

    # External tools
    helm_binary: str = Field(
        default="helm",
        validation_alias="HELM_BINARY",
        description="Helm executable name or path",
    )


# Global settings instance - initialized once at module import
settings = Settings()
