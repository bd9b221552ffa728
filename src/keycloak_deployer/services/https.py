"""
HTTPS toggle for an ingress-fronted Keycloak release.

Enabling applies the GKE ManagedCertificate and points the ingress at it
while refusing plain HTTP. Disabling removes both annotations and the
certificate.
"""

from pathlib import Path

from keycloak_deployer.constants import (
    ALLOW_HTTP_ANNOTATION,
    MANAGED_CERTIFICATES_ANNOTATION,
)
from keycloak_deployer.models.resources import (
    ReconcileOutcome,
    ReconcileResult,
    ResourceDescriptor,
    ResourceState,
)
from keycloak_deployer.observability.logging import DeployerLogger
from keycloak_deployer.services.resource_reconciler import (
    ResourceReconciler,
    load_manifests,
    parse_manifests,
)
from keycloak_deployer.templating.patcher import CERTIFICATE_FIELDS, patch_file


class HttpsToggle:
    """Switches the ingress of one release between HTTP and managed HTTPS."""

    def __init__(
        self,
        reconciler: ResourceReconciler,
        namespace: str,
        ingress_name: str,
        certificate_name: str,
    ):
        self.reconciler = reconciler
        self.namespace = namespace
        self.ingress = ResourceDescriptor("Ingress", ingress_name, namespace)
        self.certificate = ResourceDescriptor(
            "ManagedCertificate", certificate_name, namespace
        )
        self.logger = DeployerLogger(self.__class__.__name__)

    def enable(
        self, certificate_file: str | Path, domain: str | None = None
    ) -> list[ReconcileResult]:
        """
        Apply the managed certificate and annotate the ingress.

        Args:
            certificate_file: ManagedCertificate manifest, read only
            domain: Domain patched into the certificate before applying

        Returns:
            Results for the certificate and the ingress annotation
        """
        if domain:
            patched = patch_file(certificate_file, {"domain": domain}, CERTIFICATE_FIELDS)
            for warning in patched.warnings:
                self.logger.log_warning_condition(warning)
            documents = parse_manifests(patched.text, source=str(certificate_file))
        else:
            documents = load_manifests(certificate_file)

        results = [
            self.reconciler.apply_manifest(document, self.namespace)
            for document in documents
        ]
        results.append(
            self.reconciler.annotate(
                self.ingress,
                {
                    ALLOW_HTTP_ANNOTATION: "false",
                    MANAGED_CERTIFICATES_ANNOTATION: self.certificate.name,
                },
            )
        )
        self.logger.info(
            f"HTTPS enabled on {self.ingress}; certificate provisioning may take a while"
        )
        return results

    def disable(self) -> list[ReconcileResult]:
        """
        Remove the HTTPS annotations and delete the managed certificate.

        The certificate is deleted even when the ingress no longer exists,
        e.g. after the release was uninstalled.
        """
        if self.reconciler.exists(self.ingress):
            ingress_result = self.reconciler.annotate(
                self.ingress,
                {ALLOW_HTTP_ANNOTATION: None, MANAGED_CERTIFICATES_ANNOTATION: None},
            )
        else:
            ingress_result = ReconcileResult(
                self.ingress,
                ReconcileOutcome.ALREADY_ABSENT,
                ResourceState.ABSENT,
                message="ingress not found, no annotations to remove",
            )
            self.logger.log_reconcile_result(ingress_result)
        results = [ingress_result, self.reconciler.delete(self.certificate)]
        self.logger.info(f"HTTPS disabled on {self.ingress}")
        return results
