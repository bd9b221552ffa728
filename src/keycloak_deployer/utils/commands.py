"""
External command execution for helm.

Commands are run with an argument list (never a shell string), captured text
output and a timeout. Failures are raised as ``CommandError`` so that they
join the reconcile error taxonomy.
"""

import logging
import shutil
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from keycloak_deployer.constants import COMMAND_TIMEOUT_SECONDS, HELM_TIMEOUT_SECONDS
from keycloak_deployer.errors import CommandError, PreconditionFailure

logger = logging.getLogger(__name__)

RELEASE_NOT_FOUND_MARKERS = ("release: not found", "Release not loaded")


@dataclass
class CommandResult:
    """Captured result of an external command."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def run_command(
    command: list[str],
    timeout: float = COMMAND_TIMEOUT_SECONDS,
    check: bool = True,
) -> CommandResult:
    """
    Run an external command.

    Args:
        command: Argument list, executable first
        timeout: Seconds before the command is killed
        check: Raise CommandError on a non-zero exit code

    Returns:
        CommandResult with captured output

    Raises:
        CommandError: If the command fails, times out or cannot be started
    """
    logger.debug(f"Running: {' '.join(command)}")
    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(command, -1, f"timed out after {timeout}s") from e
    except OSError as e:
        raise CommandError(command, -1, str(e)) from e

    result = CommandResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if check and not result.ok:
        raise CommandError(command, result.returncode, result.stderr)
    return result


def require_tools(tools: Iterable[str]) -> None:
    """
    Verify that every tool is installed and on PATH.

    Raises:
        PreconditionFailure: For the first missing tool
    """
    for tool in tools:
        if shutil.which(tool) is None:
            raise PreconditionFailure(
                f"{tool} is not installed or not in PATH",
                field="tools",
                user_action=f"Install {tool} and make sure it is on PATH",
            )


class HelmClient:
    """Builds and runs helm release commands."""

    def __init__(self, binary: str = "helm", timeout: float = HELM_TIMEOUT_SECONDS):
        self.binary = binary
        self.timeout = timeout

    def upgrade_install(
        self,
        release: str,
        chart: str,
        namespace: str,
        values_file: str | Path,
        version: str = "",
        set_values: dict[str, str] | None = None,
    ) -> CommandResult:
        """
        Install or upgrade a release.

        Raises:
            CommandError: If helm rejects the release
        """
        command = [
            self.binary,
            "upgrade",
            "--install",
            release,
            chart,
            "--namespace",
            namespace,
            "--create-namespace",
            "--values",
            str(values_file),
        ]
        if version:
            command.extend(["--version", version])
        for key, value in (set_values or {}).items():
            command.extend(["--set", f"{key}={value}"])

        logger.info(f"Installing Helm release {release} from {chart} into {namespace}")
        return run_command(command, timeout=self.timeout)

    def uninstall(self, release: str, namespace: str) -> bool:
        """
        Uninstall a release.

        Returns:
            True if a release was removed, False if it did not exist

        Raises:
            CommandError: If helm fails for any reason other than a missing release
        """
        command = [self.binary, "uninstall", release, "--namespace", namespace]
        result = run_command(command, timeout=self.timeout, check=False)
        if result.ok:
            return True
        if any(marker in result.stderr for marker in RELEASE_NOT_FOUND_MARKERS):
            logger.info(f"Helm release {release} not found in {namespace}")
            return False
        raise CommandError(command, result.returncode, result.stderr)
