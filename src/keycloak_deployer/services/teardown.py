"""
Teardown of a Keycloak release and the resources deployed alongside it.

Steps are independent: a failing step is reported and the remaining steps
still run. The namespace is only deleted on explicit confirmation, and the
Cloud SQL instance is never touched.
"""

from dataclasses import dataclass, field

from keycloak_deployer.constants import (
    CLIENT_SECRETS_SECRET,
    DB_CREDENTIALS_SECRET,
    REALM_CONFIGMAP_NAME,
)
from keycloak_deployer.errors import DeployerError
from keycloak_deployer.models.parameters import DeploymentConfig
from keycloak_deployer.models.resources import ReconcileResult, ResourceDescriptor
from keycloak_deployer.observability.logging import DeployerLogger
from keycloak_deployer.services.resource_reconciler import ResourceReconciler
from keycloak_deployer.utils.commands import HelmClient, require_tools
from keycloak_deployer.utils.kubernetes import check_cluster_connection

CLOUD_SQL_REMINDER = (
    "The Cloud SQL instance was not deleted. "
    "Delete it separately if it is no longer needed."
)


@dataclass
class TeardownStep:
    """Outcome of one teardown step."""

    name: str
    result: ReconcileResult | None = None
    error: DeployerError | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TeardownReport:
    steps: list[TeardownStep] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed(self) -> list[TeardownStep]:
        return [step for step in self.steps if not step.ok]


class Teardown:
    """Removes a release, its secrets, realm ConfigMap and certificate."""

    def __init__(
        self,
        config: DeploymentConfig,
        reconciler: ResourceReconciler | None = None,
        helm: HelmClient | None = None,
    ):
        self.config = config
        self.reconciler = reconciler or ResourceReconciler()
        self.helm = helm or HelmClient(binary=config.helm_binary)
        self.logger = DeployerLogger(self.__class__.__name__)

    def resources(self) -> list[ResourceDescriptor]:
        """Resources deleted after the release, in order."""
        namespace = self.config.namespace
        return [
            ResourceDescriptor("Secret", DB_CREDENTIALS_SECRET, namespace),
            ResourceDescriptor("Secret", CLIENT_SECRETS_SECRET, namespace),
            ResourceDescriptor("ConfigMap", REALM_CONFIGMAP_NAME, namespace),
            ResourceDescriptor(
                "ManagedCertificate", self.config.certificate_name, namespace
            ),
        ]

    def preflight(self) -> None:
        """
        Check the helm binary and cluster connectivity before any step.

        Raises:
            PreconditionFailure: If helm is missing or the cluster is unreachable
        """
        require_tools([self.config.helm_binary])
        check_cluster_connection(self.reconciler.kubernetes_client)

    def _uninstall_release(self) -> TeardownStep:
        step = TeardownStep(name=f"helm release {self.config.release_name}")
        try:
            removed = self.helm.uninstall(self.config.release_name, self.config.namespace)
        except DeployerError as e:
            self.logger.log_error(e)
            step.error = e
            return step
        step.message = "uninstalled" if removed else "not found"
        self.logger.info(f"Helm release {self.config.release_name}: {step.message}")
        return step

    def _delete(self, descriptor: ResourceDescriptor) -> TeardownStep:
        step = TeardownStep(name=str(descriptor))
        try:
            step.result = self.reconciler.delete(descriptor)
            step.message = step.result.outcome.value
        except DeployerError as e:
            self.logger.log_error(e)
            step.error = e
        return step

    def run(self, delete_namespace: bool = False) -> TeardownReport:
        """
        Run every teardown step.

        Args:
            delete_namespace: Whether the caller confirmed namespace deletion

        Returns:
            TeardownReport; ``ok`` is False when any step failed

        Raises:
            PreconditionFailure: If the pre-flight check fails; no step runs
        """
        self.preflight()
        report = TeardownReport()
        self.logger.log_step(1, f"Uninstalling Helm release {self.config.release_name}")
        report.steps.append(self._uninstall_release())

        self.logger.log_step(2, "Deleting secrets, realm ConfigMap and certificate")
        for descriptor in self.resources():
            report.steps.append(self._delete(descriptor))

        if delete_namespace:
            self.logger.log_step(3, f"Deleting namespace {self.config.namespace}")
            report.steps.append(
                self._delete(ResourceDescriptor("Namespace", self.config.namespace))
            )
        else:
            self.logger.info(f"Keeping namespace {self.config.namespace}")

        self.logger.warning(CLOUD_SQL_REMINDER)
        return report
