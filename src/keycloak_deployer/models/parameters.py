"""
Deployment parameter and configuration models.

``DeploymentParameters`` is the Parameter Set patched into manifests.
``DeploymentConfig`` is the explicit configuration handed through the
pipeline, built from settings defaults overridden by command line flags.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from keycloak_deployer import constants
from keycloak_deployer.errors import ConfigurationError, PreconditionFailure

if TYPE_CHECKING:
    from keycloak_deployer.settings import Settings

# Required logical fields and the flag that supplies each one
REQUIRED_FIELDS: dict[str, str] = {
    "project": "--project-id",
    "region": "--region",
    "instance": "--sql-instance",
}


class DeploymentParameters(BaseModel):
    """Declared desired state patched into the values and certificate documents."""

    model_config = {"populate_by_name": True}

    project: str = Field("", description="GCP project ID")
    region: str = Field("", description="GCP region of the Cloud SQL instance")
    instance: str = Field("", description="Cloud SQL instance name")
    domain: str = Field(constants.DEFAULT_DOMAIN, description="Public Keycloak host")
    static_ip_name: str | None = Field(
        None, alias="staticIpName", description="Global static IP name for the ingress"
    )
    service_account_name: str = Field(
        constants.DEFAULT_SERVICE_ACCOUNT_NAME,
        alias="serviceAccountName",
        description="Kubernetes service account bound through Workload Identity",
    )
    gsa_email: str | None = Field(
        None, alias="gsaEmail", description="Google service account email"
    )
    deployment_type: Literal["ingress", "loadbalancer"] = Field(
        constants.DEPLOYMENT_TYPE_LOADBALANCER, alias="deploymentType"
    )
    protocol: Literal["http", "https"] = Field(constants.PROTOCOL_HTTP)

    @field_validator("project", "region", "instance", "domain", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _default_gsa_email(self) -> "DeploymentParameters":
        if not self.gsa_email and self.project:
            self.gsa_email = constants.GSA_EMAIL_TEMPLATE.format(project=self.project)
        return self

    @classmethod
    def build(cls, **data: Any) -> "DeploymentParameters":
        """
        Build and validate a parameter set.

        Raises:
            PreconditionFailure: If a required field is missing or a value is
                outside its allowed set
        """
        try:
            params = cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or None
            raise PreconditionFailure(first["msg"], field=field) from e
        params.check_required()
        return params

    def check_required(self) -> None:
        """Reject missing required fields before any cluster mutation."""
        for field, flag in REQUIRED_FIELDS.items():
            if not getattr(self, field):
                raise PreconditionFailure(
                    "value is required",
                    field=field,
                    user_action=f"Use {flag} to specify it",
                )
        if self.uses_ingress and not self.static_ip_name:
            raise PreconditionFailure(
                "static IP name is required for ingress deployment type",
                field="staticIpName",
                user_action="Use --ip-name to specify it",
            )

    @property
    def uses_ingress(self) -> bool:
        return self.deployment_type == constants.DEPLOYMENT_TYPE_INGRESS

    @property
    def https_enabled(self) -> bool:
        """HTTPS is only terminated by the GKE ingress."""
        return self.uses_ingress and self.protocol == constants.PROTOCOL_HTTPS

    @property
    def sql_connection(self) -> str:
        """Cloud SQL connection name ``project:region:instance``."""
        return f"{self.project}:{self.region}:{self.instance}"

    def as_field_map(self) -> dict[str, str | None]:
        """Logical field name to value mapping consumed by the patcher."""
        return self.model_dump(by_alias=True)


class DeploymentConfig(BaseModel):
    """Explicit per-run configuration passed through the pipeline."""

    namespace: str = constants.DEFAULT_NAMESPACE
    release_name: str = constants.DEFAULT_RELEASE_NAME
    chart_ref: str = constants.DEFAULT_CHART_REF
    chart_version: str = ""

    values_file: Path = Path(constants.DEFAULT_VALUES_FILE)
    db_secret_file: Path = Path(constants.DEFAULT_DB_SECRET_FILE)
    certificate_file: Path = Path(constants.DEFAULT_CERTIFICATE_FILE)
    certificate_name: str = constants.DEFAULT_CERTIFICATE_NAME

    realm_template_file: Path = Path(constants.DEFAULT_REALM_TEMPLATE_FILE)
    realm_payload_file: Path = Path(constants.DEFAULT_REALM_PAYLOAD_FILE)
    realm_output_file: Path = Path(constants.DEFAULT_REALM_OUTPUT_FILE)
    realm_json_key: str = constants.DEFAULT_REALM_JSON_KEY
    injection_indent: str = constants.DEFAULT_INJECTION_INDENT
    skip_realm: bool = False

    workload_kind: Literal["StatefulSet", "Deployment"] = "StatefulSet"
    rollout_timeout_seconds: float = Field(
        constants.DEFAULT_ROLLOUT_TIMEOUT_SECONDS, gt=0
    )
    rollout_poll_interval_seconds: float = Field(
        constants.DEFAULT_ROLLOUT_POLL_INTERVAL_SECONDS, gt=0
    )

    helm_binary: str = "helm"

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "DeploymentConfig":
        """
        Build a run configuration from settings, applying non-None overrides.

        Raises:
            ConfigurationError: If the combined values fail validation
        """
        data = {
            name: getattr(settings, name)
            for name in cls.model_fields
            if hasattr(settings, name)
        }
        data.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid deployer configuration: {e}") from e

    @property
    def chart_version_label(self) -> str:
        return self.chart_version or "latest"
