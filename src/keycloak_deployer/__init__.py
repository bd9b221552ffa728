"""
Keycloak GKE Deployer - deploy, configure and tear down Keycloak on GKE.

This package provides:
- Realm JSON injection into ConfigMap templates
- Block-scoped parameter patching of Helm values and manifests
- Idempotent reconciliation of the supporting Kubernetes resources
- Helm release installation and teardown
"""

__version__ = "0.1.0"
