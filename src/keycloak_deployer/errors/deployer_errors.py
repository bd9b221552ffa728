"""
Deployer error hierarchy with fatal/recoverable categorization.

Fatal errors abort the current pipeline stage and every stage depending on
it. Recoverable errors are never raised to the top level: they are attached
to results and logged as warnings.
"""


class DeployerError(Exception):
    """
    Base error class for all deployer-related exceptions.

    Provides categorization, severity and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        fatal: bool = True,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize deployer error.

        Args:
            message: Human-readable error description
            category: Error category (precondition, injection, reconcile, ...)
            fatal: Whether the error aborts the pipeline
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.fatal = fatal
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg

    @property
    def message(self) -> str:
        """Error description without the user guidance suffix."""
        return super().__str__()


class PreconditionFailure(DeployerError):
    """Missing required parameter, file or tool. Raised before any mutation."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        if field:
            message = f"Precondition failed for '{field}': {message}"
        super().__init__(
            message=message,
            category="precondition",
            fatal=True,
            user_action=user_action or "Supply the missing input and re-run",
            cause=cause,
        )


class ConfigurationError(DeployerError):
    """Error in deployer settings or command line configuration."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            category="configuration",
            fatal=True,
            user_action=user_action or "Review and correct configuration",
        )


class InjectionError(DeployerError):
    """Base class for template anchor problems."""

    def __init__(self, message: str, user_action: str | None = None):
        super().__init__(
            message=message,
            category="injection",
            fatal=True,
            user_action=user_action,
        )


class MissingAnchor(InjectionError):
    """The template contains no anchor line for the requested key."""

    def __init__(self, anchor_line: str, source: str | None = None):
        where = f" in template '{source}'" if source else ""
        super().__init__(
            message=f"Marker line '{anchor_line}' not found{where}",
            user_action=(
                f"Add the line '{anchor_line}' (two-space indent, block scalar) "
                "to the template"
            ),
        )
        self.anchor_line = anchor_line
        self.source = source


class AmbiguousAnchor(InjectionError):
    """The template contains the anchor line more than once."""

    def __init__(self, anchor_line: str, line_numbers: list[int]):
        numbers = ", ".join(str(n) for n in line_numbers)
        super().__init__(
            message=f"Marker line '{anchor_line}' appears more than once (lines {numbers})",
            user_action="Keep exactly one anchor line in the template",
        )
        self.anchor_line = anchor_line
        self.line_numbers = line_numbers


class PayloadUnavailable(DeployerError):
    """The payload source could not be read."""

    def __init__(self, path: str, cause: Exception | None = None):
        reason = f": {cause}" if cause else ""
        super().__init__(
            message=f"Payload file '{path}' could not be read{reason}",
            category="payload",
            fatal=True,
            user_action="Check that the payload file exists and is readable UTF-8 text",
            cause=cause,
        )
        self.path = path


class PatchFieldUnmatched(DeployerError):
    """A patch field's key path does not exist in the document. Recoverable."""

    def __init__(self, field: str, path: str, source: str | None = None):
        where = f" in '{source}'" if source else ""
        super().__init__(
            message=f"Field '{field}' not patched: key path '{path}' not found{where}",
            category="patch",
            fatal=False,
        )
        self.field = field
        self.path = path


class ReconcileFailure(DeployerError):
    """A cluster call was rejected for reasons other than existence."""

    def __init__(
        self,
        message: str,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category="reconcile",
            fatal=True,
            user_action=user_action
            or "Inspect the cluster state and deployer logs for issues",
            cause=cause,
        )


class KubernetesAPIError(ReconcileFailure):
    """Error communicating with the Kubernetes API."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        status: int | None = None,
        cause: Exception | None = None,
    ):
        if reason:
            message = f"{message} (reason: {reason})"
        super().__init__(
            message=f"Kubernetes API error: {message}",
            user_action="Check RBAC permissions and cluster connectivity",
            cause=cause,
        )
        self.reason = reason
        self.status = status


class CommandError(ReconcileFailure):
    """An external command (helm, kubectl) exited with a failure."""

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(
            message=f"Command '{' '.join(command[:3])}' failed with exit code {returncode}: {detail}",
            user_action=f"Run '{' '.join(command)}' manually to inspect the failure",
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class ConvergenceTimeout(DeployerError):
    """A workload did not converge within the poll bound. Recoverable."""

    def __init__(self, kind: str, name: str, namespace: str, timeout: float):
        super().__init__(
            message=(
                f"{kind} {namespace}/{name} did not become ready within {timeout:g}s"
            ),
            category="convergence",
            fatal=False,
            user_action=(
                f"Check progress with 'kubectl rollout status {kind.lower()} {name} "
                f"-n {namespace}'"
            ),
        )
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.timeout = timeout
