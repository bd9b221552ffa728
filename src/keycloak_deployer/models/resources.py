"""
Cluster resource descriptors and reconcile results.

A ``ResourceDescriptor`` identifies one named Kubernetes object and is the
unit of idempotent reconciliation. Each reconcile call yields a
``ReconcileResult`` recording the outcome and the resource's final state.
"""

from dataclasses import dataclass
from enum import Enum

from keycloak_deployer.errors import DeployerError

CLUSTER_SCOPED_KINDS = frozenset({"Namespace"})

SUPPORTED_KINDS = frozenset(
    {
        "Namespace",
        "ServiceAccount",
        "Secret",
        "ConfigMap",
        "Service",
        "Ingress",
        "StatefulSet",
        "Deployment",
        "ManagedCertificate",
    }
)


class ResourceState(Enum):
    """Lifecycle state of a single resource."""

    ABSENT = "Absent"
    CREATING = "Creating"
    PRESENT = "Present"
    ANNOTATED = "Annotated"
    PATCHED = "Patched"
    DELETING = "Deleting"


class ReconcileOutcome(Enum):
    """What a reconcile call did."""

    CREATED = "created"
    UNCHANGED = "unchanged"
    ANNOTATED = "annotated"
    PATCHED = "patched"
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    CONVERGED = "converged"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class ResourceDescriptor:
    """Identifies a named Kubernetes object by kind, name and namespace."""

    kind: str
    name: str
    namespace: str | None = None

    def __post_init__(self):
        if self.kind not in SUPPORTED_KINDS:
            raise ValueError(f"Unsupported resource kind: {self.kind}")
        if self.kind in CLUSTER_SCOPED_KINDS:
            # Cluster-scoped objects carry no namespace
            object.__setattr__(self, "namespace", None)
        elif not self.namespace:
            raise ValueError(f"{self.kind} {self.name} requires a namespace")

    @property
    def cluster_scoped(self) -> bool:
        return self.kind in CLUSTER_SCOPED_KINDS

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind} {self.namespace}/{self.name}"
        return f"{self.kind} {self.name}"


@dataclass
class ReconcileResult:
    """Result of reconciling one resource descriptor."""

    descriptor: ResourceDescriptor
    outcome: ReconcileOutcome
    state: ResourceState
    message: str = ""
    warning: DeployerError | None = None
    error: DeployerError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != ReconcileOutcome.FAILED
