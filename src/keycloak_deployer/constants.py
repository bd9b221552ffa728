"""
Constants used throughout the Keycloak deployer.

This module defines all constant values used by the deployer including:
- Kubernetes annotation keys for GKE integrations
- Default resource names shared with the Helm values file
- Template injection defaults
- Convergence poll bounds
"""

# Annotation keys for GKE integrations
WORKLOAD_IDENTITY_ANNOTATION = "iam.gke.io/gcp-service-account"
STATIC_IP_ANNOTATION = "kubernetes.io/ingress.global-static-ip-name"
MANAGED_CERTIFICATES_ANNOTATION = "networking.gke.io/managed-certificates"
ALLOW_HTTP_ANNOTATION = "kubernetes.io/ingress.allow-http"

# Managed certificate custom resource
MANAGED_CERTIFICATE_GROUP = "networking.gke.io"
MANAGED_CERTIFICATE_VERSION = "v1"
MANAGED_CERTIFICATE_PLURAL = "managedcertificates"

# Default resource names (must match the Helm values file)
DEFAULT_NAMESPACE = "keycloak"
DEFAULT_RELEASE_NAME = "keycloak"
DEFAULT_CHART_REF = "codecentric/keycloak"
DEFAULT_DOMAIN = "keycloak.example.com"
DEFAULT_SERVICE_ACCOUNT_NAME = "keycloak"
DEFAULT_CERTIFICATE_NAME = "keycloak-certificate"
DB_CREDENTIALS_SECRET = "keycloak-db-credentials"
CLIENT_SECRETS_SECRET = "keycloak-client-secrets"
REALM_CONFIGMAP_NAME = "custom-realm-config"
GSA_EMAIL_TEMPLATE = "keycloak-sql-proxy-gsa@{project}.iam.gserviceaccount.com"

# Default file locations, relative to the working directory
DEFAULT_VALUES_FILE = "manifests/helm/values.yaml"
DEFAULT_DB_SECRET_FILE = "manifests/k8s/keycloak-db-credentials.yaml"
DEFAULT_CERTIFICATE_FILE = "manifests/k8s/keycloak-certificate.yaml"
DEFAULT_REALM_TEMPLATE_FILE = "manifests/k8s/custom-realm-config.yaml.template"
DEFAULT_REALM_PAYLOAD_FILE = "manifests/k8s/app-realm.json"
DEFAULT_REALM_OUTPUT_FILE = "manifests/k8s/custom-realm-config.yaml"

# Template injection
DEFAULT_REALM_JSON_KEY = "app-realm.json"
DEFAULT_INJECTION_INDENT = "      "
ANCHOR_PREFIX = "  "
ANCHOR_SUFFIX = ": |"

# Deployment types and protocols
DEPLOYMENT_TYPE_INGRESS = "ingress"
DEPLOYMENT_TYPE_LOADBALANCER = "loadbalancer"
PROTOCOL_HTTP = "http"
PROTOCOL_HTTPS = "https"

# Workload convergence
DEFAULT_WORKLOAD_KIND = "StatefulSet"
DEFAULT_ROLLOUT_TIMEOUT_SECONDS = 600
DEFAULT_ROLLOUT_POLL_INTERVAL_SECONDS = 5.0

# External command timeouts
HELM_TIMEOUT_SECONDS = 900
COMMAND_TIMEOUT_SECONDS = 60

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1
