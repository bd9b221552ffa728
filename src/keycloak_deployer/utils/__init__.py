"""
Utils package - Helper modules for Keycloak deployer functionality.

Contains helper modules for:
- Kubernetes client configuration
- External command execution (helm)
- Scoped scratch files released on every exit path
"""

from keycloak_deployer.utils.scratch import scratch_file, termination_signals_raise

__all__ = [
    "scratch_file",
    "termination_signals_raise",
]
