"""
Deploy pipeline for Keycloak on GKE.

Stages run in order and a fatal error aborts every later stage:

1. Pre-flight checks (parameters, files, tools, cluster connectivity)
2. Realm injection into the ConfigMap template
3. Values and certificate patching into scratch files
4. Namespace, service account, database secret and realm ConfigMap
5. Helm release install or upgrade
6. HTTPS certificate and ingress annotations (ingress + https only)
7. Workload rollout poll
8. Summary

Stages 1-3 never touch the cluster. Source manifests are never modified;
patched copies live in scratch files released on every exit path.
"""

import contextlib
import time
from dataclasses import dataclass, field
from pathlib import Path

from kubernetes import client

from keycloak_deployer.constants import (
    DEPLOYMENT_TYPE_INGRESS,
    PROTOCOL_HTTP,
    WORKLOAD_IDENTITY_ANNOTATION,
)
from keycloak_deployer.errors import DeployerError, PreconditionFailure
from keycloak_deployer.models.parameters import DeploymentConfig, DeploymentParameters
from keycloak_deployer.models.resources import (
    ReconcileOutcome,
    ReconcileResult,
    ResourceDescriptor,
)
from keycloak_deployer.observability.logging import DeployerLogger
from keycloak_deployer.services.https import HttpsToggle
from keycloak_deployer.services.resource_reconciler import (
    ResourceReconciler,
    load_manifests,
)
from keycloak_deployer.templating.injector import inject_file
from keycloak_deployer.templating.patcher import (
    CERTIFICATE_FIELDS,
    VALUES_FIELDS,
    patch_file,
)
from keycloak_deployer.utils.commands import HelmClient, require_tools
from keycloak_deployer.utils.kubernetes import check_cluster_connection
from keycloak_deployer.utils.scratch import (
    scratch_file,
    termination_signals_raise,
    write_text_atomic,
)


def helm_set_values(params: DeploymentParameters) -> dict[str, str]:
    """Derive the ``--set`` overrides for a deployment type and protocol."""
    values = {"deploymentType": params.deployment_type}
    if params.uses_ingress:
        values["ingress.enabled"] = "true"
        values["service.type"] = "ClusterIP"
        values["https.enabled"] = "true" if params.https_enabled else "false"
    else:
        values["ingress.enabled"] = "false"
        values["service.type"] = "LoadBalancer"
        # TLS is terminated by the GKE ingress only
        values["https.enabled"] = "false"
    return values


@dataclass
class DeploymentSummary:
    """What a deploy run produced."""

    namespace: str
    release_name: str
    chart_version: str
    deployment_type: str
    protocol: str
    domain: str | None = None
    static_ip_name: str | None = None
    external_ip: str | None = None
    results: list[ReconcileResult] = field(default_factory=list)
    warnings: list[DeployerError] = field(default_factory=list)
    duration: float = 0.0

    @property
    def uses_ingress(self) -> bool:
        return self.deployment_type == DEPLOYMENT_TYPE_INGRESS

    @property
    def access_url(self) -> str | None:
        if not self.external_ip:
            return None
        if self.uses_ingress:
            return f"{self.protocol}://{self.domain}"
        return f"{PROTOCOL_HTTP}://{self.external_ip}"

    @property
    def converged(self) -> bool:
        return not any(r.outcome == ReconcileOutcome.TIMED_OUT for r in self.results)

    def render(self) -> list[str]:
        """Human-readable summary lines."""
        lines = [
            "Keycloak Deployment Summary:",
            f"Namespace: {self.namespace}",
            f"Release Name: {self.release_name}",
            f"Chart Version: {self.chart_version}",
            f"Deployment Type: {self.deployment_type}",
        ]
        if self.uses_ingress:
            lines += [
                f"Protocol: {self.protocol}",
                f"Domain: {self.domain}",
                f"Static IP Name: {self.static_ip_name}",
            ]
        resource = "ingress" if self.uses_ingress else "service"
        if self.external_ip:
            via = "Ingress" if self.uses_ingress else "LoadBalancer"
            lines.append(f"External IP (via {via}): {self.external_ip}")
            lines.append(f"You can access Keycloak at: {self.access_url}")
        else:
            lines.append(
                f"External IP not yet assigned. Check the {resource} status: "
                f'kubectl get {resource} "{self.release_name}" -n "{self.namespace}"'
            )
        for warning in self.warnings:
            lines.append(f"Warning: {warning.message}")
        return lines


class DeploymentPipeline:
    """
    Runs the deploy stages for one Keycloak release.

    One pipeline instance performs one run; it is not meant to be reused.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        params: DeploymentParameters,
        reconciler: ResourceReconciler | None = None,
        helm: HelmClient | None = None,
        k8s_client: client.ApiClient | None = None,
    ):
        self.config = config
        self.params = params
        self.reconciler = reconciler or ResourceReconciler(k8s_client)
        self.helm = helm or HelmClient(binary=config.helm_binary)
        self.logger = DeployerLogger(self.__class__.__name__)
        self.results: list[ReconcileResult] = []
        self.warnings: list[DeployerError] = []

    def _record(self, result: ReconcileResult) -> ReconcileResult:
        self.results.append(result)
        if result.warning is not None:
            self.warnings.append(result.warning)
        return result

    def _field_map(self) -> dict[str, str | None]:
        values = self.params.as_field_map()
        if not self.params.uses_ingress:
            # Ingress values stay as shipped for LoadBalancer releases
            values["domain"] = None
            values["staticIpName"] = None
        return values

    def required_files(self) -> list[Path]:
        files = [self.config.values_file, self.config.db_secret_file]
        if self.params.https_enabled:
            files.append(self.config.certificate_file)
        if not self.config.skip_realm:
            files += [self.config.realm_template_file, self.config.realm_payload_file]
        return files

    # -- stages -----------------------------------------------------------

    def preflight(self) -> str:
        """
        Validate inputs before any mutation.

        Returns:
            Kubernetes server version

        Raises:
            PreconditionFailure: On a missing parameter, file, tool or cluster
        """
        self.logger.log_step(1, "Running pre-flight checks")
        self.params.check_required()
        for path in self.required_files():
            if not Path(path).is_file():
                raise PreconditionFailure(
                    f"required file not found: {path}",
                    field="files",
                    user_action="Run from the directory holding the manifests or point the settings at them",
                )
        # Parse now so a malformed secret fails before the cluster is touched
        load_manifests(self.config.db_secret_file)
        require_tools([self.config.helm_binary])
        return check_cluster_connection(self.reconciler.kubernetes_client)

    def inject_realm(self) -> None:
        """Embed the realm JSON into the realm ConfigMap manifest."""
        self.logger.log_step(2, "Injecting realm into ConfigMap template")
        inject_file(
            self.config.realm_template_file,
            self.config.realm_payload_file,
            self.config.realm_output_file,
            anchor_key=self.config.realm_json_key,
            indent=self.config.injection_indent,
        )

    def patch_manifests(self, stack: contextlib.ExitStack) -> tuple[Path, Path | None]:
        """
        Write patched copies of the values and certificate documents.

        Args:
            stack: Exit stack owning the scratch files

        Returns:
            Patched values path and, when HTTPS is enabled, certificate path
        """
        self.logger.log_step(3, "Patching values with deployment parameters")
        field_map = self._field_map()

        values = patch_file(self.config.values_file, field_map, VALUES_FIELDS)
        self.warnings.extend(values.warnings)
        values_path = stack.enter_context(scratch_file(prefix="keycloak-values-"))
        write_text_atomic(values_path, values.text)
        self.logger.info(
            f"Patched {len(values.applied)} value(s): {', '.join(values.applied) or 'none'}",
            target_path=str(values_path),
        )

        certificate_path = None
        if self.params.https_enabled:
            certificate = patch_file(
                self.config.certificate_file, field_map, CERTIFICATE_FIELDS
            )
            self.warnings.extend(certificate.warnings)
            certificate_path = stack.enter_context(
                scratch_file(prefix="keycloak-certificate-")
            )
            write_text_atomic(certificate_path, certificate.text)

        return values_path, certificate_path

    def reconcile_prerequisites(self) -> None:
        """Namespace, then service account, then secret, then realm ConfigMap."""
        namespace = self.config.namespace
        self.logger.log_step(4, f"Reconciling prerequisites in namespace {namespace}")

        self._record(self.reconciler.ensure(ResourceDescriptor("Namespace", namespace)))

        annotations = {}
        if self.params.gsa_email:
            annotations[WORKLOAD_IDENTITY_ANNOTATION] = self.params.gsa_email
        self._record(
            self.reconciler.ensure_service_account(
                self.params.service_account_name, namespace, annotations
            )
        )

        for result in self.reconciler.apply_manifest_file(
            self.config.db_secret_file, namespace
        ):
            self._record(result)

        if not self.config.skip_realm:
            for result in self.reconciler.apply_manifest_file(
                self.config.realm_output_file, namespace
            ):
                self._record(result)

    def install_release(self, values_path: Path) -> None:
        self.logger.log_step(
            5, f"Installing Helm release {self.config.release_name}"
        )
        self.helm.upgrade_install(
            release=self.config.release_name,
            chart=self.config.chart_ref,
            namespace=self.config.namespace,
            values_file=values_path,
            version=self.config.chart_version,
            set_values=helm_set_values(self.params),
        )

    def configure_https(self, certificate_path: Path) -> None:
        self.logger.log_step(6, "Configuring HTTPS")
        toggle = HttpsToggle(
            self.reconciler,
            namespace=self.config.namespace,
            ingress_name=self.config.release_name,
            certificate_name=self.config.certificate_name,
        )
        for result in toggle.enable(certificate_path):
            self._record(result)

    def wait_for_rollout(self) -> ReconcileResult:
        self.logger.log_step(7, f"Waiting for {self.config.workload_kind} to be ready")
        return self._record(
            self.reconciler.wait_for_rollout(
                self.config.workload_kind,
                self.config.release_name,
                self.config.namespace,
                timeout=self.config.rollout_timeout_seconds,
                interval=self.config.rollout_poll_interval_seconds,
            )
        )

    def summarize(self) -> DeploymentSummary:
        kind = "Ingress" if self.params.uses_ingress else "Service"
        external_ip = self.reconciler.read_external_ip(
            ResourceDescriptor(kind, self.config.release_name, self.config.namespace)
        )
        return DeploymentSummary(
            namespace=self.config.namespace,
            release_name=self.config.release_name,
            chart_version=self.config.chart_version_label,
            deployment_type=self.params.deployment_type,
            protocol=self.params.protocol,
            domain=self.params.domain if self.params.uses_ingress else None,
            static_ip_name=self.params.static_ip_name,
            external_ip=external_ip,
            results=list(self.results),
            warnings=list(self.warnings),
        )

    def run(self) -> DeploymentSummary:
        """
        Execute every stage in order.

        Returns:
            DeploymentSummary; a rollout timeout is reported as a warning

        Raises:
            DeployerError: The first fatal error; later stages are skipped
        """
        start_time = time.time()
        with termination_signals_raise(), contextlib.ExitStack() as stack:
            self.preflight()
            if self.config.skip_realm:
                self.logger.info("Skipping realm injection")
            else:
                self.inject_realm()
            values_path, certificate_path = self.patch_manifests(stack)
            self.reconcile_prerequisites()
            self.install_release(values_path)
            if certificate_path is not None:
                self.configure_https(certificate_path)
            self.wait_for_rollout()

            self.logger.log_step(8, "Collecting deployment summary")
            summary = self.summarize()

        summary.duration = time.time() - start_time
        self.logger.info(
            f"Deployment of {summary.release_name} finished in {summary.duration:.1f}s",
            duration=summary.duration,
        )
        return summary
