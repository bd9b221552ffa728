"""
Resource reconciler providing idempotent operations on named cluster objects.

Every mutating call is preceded by an existence check on the resource
descriptor. Creation that races with another writer (HTTP 409) counts as
success, deletion of an absent resource counts as success, and annotations
are merged key by key so that unrelated annotations survive.
"""

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from keycloak_deployer.constants import (
    MANAGED_CERTIFICATE_GROUP,
    MANAGED_CERTIFICATE_PLURAL,
    MANAGED_CERTIFICATE_VERSION,
)
from keycloak_deployer.errors import (
    ConvergenceTimeout,
    KubernetesAPIError,
    PreconditionFailure,
    ReconcileFailure,
)
from keycloak_deployer.models.resources import (
    SUPPORTED_KINDS,
    ReconcileOutcome,
    ReconcileResult,
    ResourceDescriptor,
    ResourceState,
)
from keycloak_deployer.observability.logging import DeployerLogger

# Kind -> (API attribute, method suffix) for typed namespaced resources
_TYPED_KINDS: dict[str, tuple[str, str]] = {
    "ServiceAccount": ("core_v1", "service_account"),
    "Secret": ("core_v1", "secret"),
    "ConfigMap": ("core_v1", "config_map"),
    "Service": ("core_v1", "service"),
    "Ingress": ("networking_v1", "ingress"),
    "StatefulSet": ("apps_v1", "stateful_set"),
    "Deployment": ("apps_v1", "deployment"),
}

_API_VERSIONS: dict[str, str] = {
    "Namespace": "v1",
    "ServiceAccount": "v1",
    "Secret": "v1",
    "ConfigMap": "v1",
    "Service": "v1",
    "Ingress": "networking.k8s.io/v1",
    "StatefulSet": "apps/v1",
    "Deployment": "apps/v1",
    "ManagedCertificate": f"{MANAGED_CERTIFICATE_GROUP}/{MANAGED_CERTIFICATE_VERSION}",
}

_METADATA_ONLY_KEYS = frozenset({"apiVersion", "kind", "metadata"})


def _api_error(action: str, descriptor: ResourceDescriptor, e: ApiException) -> KubernetesAPIError:
    return KubernetesAPIError(
        f"Failed to {action} {descriptor}: {e.reason}",
        reason=e.reason,
        status=e.status,
        cause=e,
    )


def _annotations_of(obj: Any) -> dict[str, str]:
    """Annotations of a typed model or a custom object dict."""
    if isinstance(obj, dict):
        return dict((obj.get("metadata") or {}).get("annotations") or {})
    metadata = getattr(obj, "metadata", None)
    return dict(getattr(metadata, "annotations", None) or {})


def _has_content(body: dict[str, Any]) -> bool:
    """Whether a body specifies more than the object's identity."""
    if any(key not in _METADATA_ONLY_KEYS for key in body):
        return True
    metadata = body.get("metadata") or {}
    return bool(metadata.get("labels") or metadata.get("annotations"))


def _rollout_complete(kind: str, workload: Any) -> bool:
    """Mirror the readiness rules of ``kubectl rollout status``."""
    spec = workload.spec
    status = workload.status
    if status is None:
        return False

    desired = spec.replicas if spec is not None and spec.replicas is not None else 1
    generation = workload.metadata.generation if workload.metadata else None
    observed = status.observed_generation
    if generation is not None and (observed is None or observed < generation):
        return False

    updated = status.updated_replicas or 0
    ready = status.ready_replicas or 0
    if updated < desired or ready < desired:
        return False

    if kind == "StatefulSet":
        update_revision = status.update_revision
        current_revision = status.current_revision
        if update_revision and current_revision and update_revision != current_revision:
            return False
        return True

    # Deployment: no replicas of an old revision may remain
    total = status.replicas or 0
    available = status.available_replicas or 0
    return total <= updated and available >= updated


def parse_manifests(text: str, source: str = "<string>") -> list[dict[str, Any]]:
    """
    Parse and check the YAML documents of a manifest.

    Args:
        text: Manifest text, possibly holding several documents
        source: Name used in error messages

    Returns:
        Non-empty documents in order

    Raises:
        PreconditionFailure: If the text is not valid YAML, or holds a
            document without kind/name or of an unsupported kind
    """
    try:
        documents = [doc for doc in yaml.safe_load_all(text) if doc]
    except yaml.YAMLError as e:
        raise PreconditionFailure(f"invalid YAML in {source}: {e}", field="manifest") from e

    for doc in documents:
        if not isinstance(doc, dict):
            raise PreconditionFailure(f"{source} holds a non-mapping document", field="manifest")
        kind = doc.get("kind")
        name = (doc.get("metadata") or {}).get("name")
        if kind not in SUPPORTED_KINDS or not name:
            raise PreconditionFailure(
                f"{source}: unsupported or unnamed resource (kind={kind!r}, name={name!r})",
                field="manifest",
            )
    return documents


def load_manifests(path: str | Path) -> list[dict[str, Any]]:
    """
    Load and check the YAML documents of a manifest file.

    Raises:
        PreconditionFailure: If the file is missing or its content is invalid
    """
    path = Path(path)
    if not path.is_file():
        raise PreconditionFailure(f"manifest file not found: {path}", field="manifest")
    try:
        with open(path, encoding="utf-8") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as e:
        raise PreconditionFailure(
            f"manifest file cannot be read: {path}: {e}", field="manifest", cause=e
        ) from e
    return parse_manifests(text, source=str(path))


class ResourceReconciler:
    """
    Idempotent create, annotate, delete and convergence operations.

    One instance is used sequentially within a deployment run.
    """

    def __init__(
        self,
        k8s_client: client.ApiClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the reconciler.

        Args:
            k8s_client: Kubernetes API client, created on first use if not provided
            sleep: Sleep function used by the convergence poll
            clock: Monotonic clock used by the convergence poll
        """
        self.k8s_client = k8s_client
        self.logger = DeployerLogger(self.__class__.__name__)
        self._sleep = sleep
        self._clock = clock
        self._core_v1: client.CoreV1Api | None = None
        self._apps_v1: client.AppsV1Api | None = None
        self._networking_v1: client.NetworkingV1Api | None = None
        self._custom_objects: client.CustomObjectsApi | None = None

    @property
    def kubernetes_client(self) -> client.ApiClient:
        """Get or create Kubernetes API client."""
        if self.k8s_client is None:
            from keycloak_deployer.utils.kubernetes import get_kubernetes_client

            self.k8s_client = get_kubernetes_client()
        return self.k8s_client

    @property
    def core_v1(self) -> client.CoreV1Api:
        if self._core_v1 is None:
            self._core_v1 = client.CoreV1Api(self.kubernetes_client)
        return self._core_v1

    @property
    def apps_v1(self) -> client.AppsV1Api:
        if self._apps_v1 is None:
            self._apps_v1 = client.AppsV1Api(self.kubernetes_client)
        return self._apps_v1

    @property
    def networking_v1(self) -> client.NetworkingV1Api:
        if self._networking_v1 is None:
            self._networking_v1 = client.NetworkingV1Api(self.kubernetes_client)
        return self._networking_v1

    @property
    def custom_objects(self) -> client.CustomObjectsApi:
        if self._custom_objects is None:
            self._custom_objects = client.CustomObjectsApi(self.kubernetes_client)
        return self._custom_objects

    # -- raw API dispatch -------------------------------------------------

    def _call(self, verb: str, descriptor: ResourceDescriptor, body: Any = None) -> Any:
        """
        Invoke ``verb`` (read, create, patch, delete) for a descriptor.

        ``ApiException`` is left to the caller; transport failures are
        wrapped in KubernetesAPIError.
        """
        try:
            return self._dispatch(verb, descriptor, body)
        except HTTPError as e:
            raise KubernetesAPIError(
                f"Failed to {verb} {descriptor}: {e}",
                reason=type(e).__name__,
                cause=e,
            ) from e

    def _dispatch(self, verb: str, descriptor: ResourceDescriptor, body: Any) -> Any:
        kind = descriptor.kind
        name = descriptor.name
        namespace = descriptor.namespace

        if kind == "Namespace":
            api = self.core_v1
            if verb == "read":
                return api.read_namespace(name=name)
            if verb == "create":
                return api.create_namespace(body=body)
            if verb == "patch":
                return api.patch_namespace(name=name, body=body)
            return api.delete_namespace(
                name=name,
                body=client.V1DeleteOptions(propagation_policy="Background"),
            )

        if kind == "ManagedCertificate":
            api = self.custom_objects
            target = {
                "group": MANAGED_CERTIFICATE_GROUP,
                "version": MANAGED_CERTIFICATE_VERSION,
                "namespace": namespace,
                "plural": MANAGED_CERTIFICATE_PLURAL,
            }
            if verb == "read":
                return api.get_namespaced_custom_object(name=name, **target)
            if verb == "create":
                return api.create_namespaced_custom_object(body=body, **target)
            if verb == "patch":
                return api.patch_namespaced_custom_object(name=name, body=body, **target)
            return api.delete_namespaced_custom_object(name=name, **target)

        api_attr, suffix = _TYPED_KINDS[kind]
        api = getattr(self, api_attr)
        if verb == "read":
            return getattr(api, f"read_namespaced_{suffix}")(name=name, namespace=namespace)
        if verb == "create":
            return getattr(api, f"create_namespaced_{suffix}")(namespace=namespace, body=body)
        if verb == "patch":
            return getattr(api, f"patch_namespaced_{suffix}")(
                name=name, namespace=namespace, body=body
            )
        return getattr(api, f"delete_namespaced_{suffix}")(name=name, namespace=namespace)

    def _read(self, descriptor: ResourceDescriptor) -> Any | None:
        """Read a resource; None when it does not exist."""
        try:
            return self._call("read", descriptor)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _api_error("read", descriptor, e) from e

    def _identity_body(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": descriptor.name}
        if descriptor.namespace:
            metadata["namespace"] = descriptor.namespace
        return {
            "apiVersion": _API_VERSIONS[descriptor.kind],
            "kind": descriptor.kind,
            "metadata": metadata,
        }

    # -- reconcile operations ---------------------------------------------

    def exists(self, descriptor: ResourceDescriptor) -> bool:
        """
        Check whether a resource exists.

        Raises:
            KubernetesAPIError: If the read fails for reasons other than 404
        """
        return self._read(descriptor) is not None

    def ensure(
        self, descriptor: ResourceDescriptor, body: dict[str, Any] | None = None
    ) -> ReconcileResult:
        """
        Create a resource if absent, patch it if present and ``body`` has content.

        Args:
            descriptor: Resource to reconcile
            body: Desired object; defaults to the bare identity

        Returns:
            ReconcileResult with outcome created, patched or unchanged

        Raises:
            KubernetesAPIError: If the control plane rejects the call
        """
        body = body or self._identity_body(descriptor)
        existing = self._read(descriptor)

        if existing is None:
            try:
                self._call("create", descriptor, body)
                result = ReconcileResult(
                    descriptor,
                    ReconcileOutcome.CREATED,
                    ResourceState.PRESENT,
                    message="created",
                )
                self.logger.log_reconcile_result(result)
                return result
            except ApiException as e:
                if e.status != 409:
                    raise _api_error("create", descriptor, e) from e
                self.logger.info(f"{descriptor} already exists, treating create as success")

        if not _has_content(body):
            result = ReconcileResult(
                descriptor,
                ReconcileOutcome.UNCHANGED,
                ResourceState.PRESENT,
                message="already exists",
            )
            self.logger.log_reconcile_result(result)
            return result

        try:
            self._call("patch", descriptor, body)
        except ApiException as e:
            raise _api_error("patch", descriptor, e) from e

        result = ReconcileResult(
            descriptor,
            ReconcileOutcome.PATCHED,
            ResourceState.PATCHED,
            message="updated to desired state",
        )
        self.logger.log_reconcile_result(result)
        return result

    def annotate(
        self, descriptor: ResourceDescriptor, annotations: dict[str, str | None]
    ) -> ReconcileResult:
        """
        Merge annotations onto an existing resource, last writer wins.

        A None value removes the annotation. Annotations not named are kept.

        Raises:
            ReconcileFailure: If the resource does not exist
            KubernetesAPIError: If the control plane rejects the patch
        """
        existing = self._read(descriptor)
        if existing is None:
            raise ReconcileFailure(
                f"Cannot annotate {descriptor}: resource not found",
                user_action="Make sure the resource was created by an earlier step",
            )

        current = _annotations_of(existing)
        pending = {
            key: value
            for key, value in annotations.items()
            if (value is None and key in current)
            or (value is not None and current.get(key) != value)
        }
        if not pending:
            result = ReconcileResult(
                descriptor,
                ReconcileOutcome.UNCHANGED,
                ResourceState.ANNOTATED,
                message="annotations already current",
            )
            self.logger.log_reconcile_result(result)
            return result

        try:
            self._call("patch", descriptor, {"metadata": {"annotations": pending}})
        except ApiException as e:
            raise _api_error("annotate", descriptor, e) from e

        result = ReconcileResult(
            descriptor,
            ReconcileOutcome.ANNOTATED,
            ResourceState.ANNOTATED,
            message=", ".join(sorted(pending)),
        )
        self.logger.log_reconcile_result(result)
        return result

    def ensure_service_account(
        self, name: str, namespace: str, annotations: dict[str, str] | None = None
    ) -> ReconcileResult:
        """
        Create and annotate a service account, then confirm the control plane
        serves the annotations before returning.

        Raises:
            ReconcileFailure: If the annotations are not visible after patching
        """
        descriptor = ResourceDescriptor("ServiceAccount", name, namespace)
        result = self.ensure(descriptor)
        if not annotations:
            return result

        result = self.annotate(descriptor, dict(annotations))

        current = _annotations_of(self._read(descriptor))
        missing = [key for key, value in annotations.items() if current.get(key) != value]
        if missing:
            raise ReconcileFailure(
                f"{descriptor} annotations not acknowledged: {', '.join(missing)}"
            )
        return result

    def apply_manifest(
        self, document: dict[str, Any], default_namespace: str
    ) -> ReconcileResult:
        """
        Create-or-update one manifest document.

        Raises:
            ReconcileFailure: If the document kind is not supported
            KubernetesAPIError: If the control plane rejects the call
        """
        body = dict(document)
        metadata = dict(body.get("metadata") or {})
        kind = body.get("kind", "")
        try:
            descriptor = ResourceDescriptor(
                kind, metadata.get("name", ""), metadata.get("namespace") or default_namespace
            )
        except ValueError as e:
            raise ReconcileFailure(f"Cannot apply manifest: {e}") from e

        if descriptor.namespace:
            metadata["namespace"] = descriptor.namespace
        body["metadata"] = metadata
        return self.ensure(descriptor, body)

    def apply_manifest_file(
        self, path: str | Path, default_namespace: str
    ) -> list[ReconcileResult]:
        """Apply every document of a manifest file in order."""
        return [
            self.apply_manifest(document, default_namespace)
            for document in load_manifests(path)
        ]

    def delete(self, descriptor: ResourceDescriptor) -> ReconcileResult:
        """
        Delete a resource with ignore-not-found semantics.

        Raises:
            KubernetesAPIError: If the control plane rejects the deletion
        """
        if self._read(descriptor) is None:
            result = ReconcileResult(
                descriptor,
                ReconcileOutcome.ALREADY_ABSENT,
                ResourceState.ABSENT,
                message="not found",
            )
            self.logger.log_reconcile_result(result)
            return result

        try:
            self._call("delete", descriptor)
        except ApiException as e:
            if e.status != 404:
                raise _api_error("delete", descriptor, e) from e
            result = ReconcileResult(
                descriptor,
                ReconcileOutcome.ALREADY_ABSENT,
                ResourceState.ABSENT,
                message="removed concurrently",
            )
            self.logger.log_reconcile_result(result)
            return result

        # Namespaces terminate asynchronously
        state = ResourceState.DELETING if descriptor.cluster_scoped else ResourceState.ABSENT
        result = ReconcileResult(
            descriptor, ReconcileOutcome.DELETED, state, message="deletion requested"
        )
        self.logger.log_reconcile_result(result)
        return result

    def wait_for_rollout(
        self,
        kind: str,
        name: str,
        namespace: str,
        timeout: float,
        interval: float = 5.0,
    ) -> ReconcileResult:
        """
        Poll a workload until its rollout completes or ``timeout`` elapses.

        A missing workload and transient read errors keep the poll going.

        Returns:
            ReconcileResult with outcome converged, or timed_out carrying a
            ConvergenceTimeout warning
        """
        descriptor = ResourceDescriptor(kind, name, namespace)
        deadline = self._clock() + timeout
        found = False
        last_error: KubernetesAPIError | None = None

        self.logger.info(f"Waiting up to {timeout:g}s for {descriptor} rollout")
        while True:
            try:
                workload = self._read(descriptor)
            except KubernetesAPIError as e:
                workload = None
                last_error = e
            if workload is not None:
                found = True
                if _rollout_complete(kind, workload):
                    result = ReconcileResult(
                        descriptor,
                        ReconcileOutcome.CONVERGED,
                        ResourceState.PRESENT,
                        message="rollout complete",
                    )
                    self.logger.log_reconcile_result(result)
                    return result

            remaining = deadline - self._clock()
            if remaining <= 0:
                break
            self._sleep(min(interval, remaining))

        warning = ConvergenceTimeout(kind, name, namespace, timeout)
        message = warning.message
        if last_error is not None:
            message = f"{message}; last error: {last_error.message}"
        result = ReconcileResult(
            descriptor,
            ReconcileOutcome.TIMED_OUT,
            ResourceState.PRESENT if found else ResourceState.ABSENT,
            message=message,
            warning=warning,
        )
        self.logger.log_reconcile_result(result)
        return result

    def read_external_ip(self, descriptor: ResourceDescriptor) -> str | None:
        """First load balancer ingress IP of an Ingress or Service, if assigned."""
        obj = self._read(descriptor)
        if obj is None or obj.status is None or obj.status.load_balancer is None:
            return None
        ingress = obj.status.load_balancer.ingress or []
        return ingress[0].ip if ingress else None
