"""
Command line interface for the Keycloak deployer.

Sub-commands:
    deploy        Deploy or upgrade Keycloak on GKE
    inject-realm  Embed the realm JSON into the realm ConfigMap manifest
    uninstall     Remove the release and its supporting resources
    https         Enable or disable managed HTTPS on the ingress

Defaults come from environment settings; flags override them per run.
"""

import argparse
import sys
from collections.abc import Callable

from keycloak_deployer.constants import (
    DEPLOYMENT_TYPE_INGRESS,
    DEPLOYMENT_TYPE_LOADBALANCER,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    PROTOCOL_HTTP,
    PROTOCOL_HTTPS,
)
from keycloak_deployer.errors import DeployerError
from keycloak_deployer.models.parameters import DeploymentConfig, DeploymentParameters
from keycloak_deployer.observability.logging import (
    generate_correlation_id,
    set_correlation_id,
    setup_structured_logging,
)
from keycloak_deployer.services.deployment import DeploymentPipeline
from keycloak_deployer.services.https import HttpsToggle
from keycloak_deployer.services.resource_reconciler import ResourceReconciler
from keycloak_deployer.services.teardown import Teardown
from keycloak_deployer.settings import settings
from keycloak_deployer.templating.injector import inject_file
from keycloak_deployer.utils.scratch import TerminationRequested


def _add_release_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-n", "--namespace", help=f"Kubernetes namespace (default: {settings.namespace})"
    )
    parser.add_argument(
        "-r", "--release", help=f"Helm release name (default: {settings.release_name})"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keycloak-deployer",
        description="Deploy Keycloak on GKE with Cloud SQL and Workload Identity",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy = subparsers.add_parser("deploy", help="Deploy or upgrade Keycloak")
    _add_release_arguments(deploy)
    deploy.add_argument("-c", "--chart", help=f"Helm chart (default: {settings.chart_ref})")
    deploy.add_argument("-v", "--version", help="Chart version (default: latest)")
    deploy.add_argument(
        "-p", "--protocol", choices=[PROTOCOL_HTTP, PROTOCOL_HTTPS], default=PROTOCOL_HTTP
    )
    deploy.add_argument("-d", "--domain", help="Domain name for Keycloak")
    deploy.add_argument(
        "-i", "--ip-name", help="Global static IP name (required for ingress)"
    )
    deploy.add_argument("--project-id", help="GCP project ID (required)")
    deploy.add_argument("--region", help="GCP region (required)")
    deploy.add_argument("--sql-instance", help="Cloud SQL instance name (required)")
    deploy.add_argument(
        "--deployment-type",
        choices=[DEPLOYMENT_TYPE_INGRESS, DEPLOYMENT_TYPE_LOADBALANCER],
        default=DEPLOYMENT_TYPE_LOADBALANCER,
    )
    deploy.add_argument("--service-account", help="Kubernetes service account name")
    deploy.add_argument(
        "--gsa-email",
        help="Google service account email (default: keycloak-sql-proxy-gsa@<project>)",
    )
    deploy.add_argument("--values-file", help="Helm values template")
    deploy.add_argument(
        "--skip-realm", action="store_true", help="Skip realm injection and import"
    )
    deploy.add_argument(
        "--rollout-timeout", type=float, help="Seconds to wait for the rollout"
    )
    deploy.set_defaults(handler=_cmd_deploy)

    realm = subparsers.add_parser(
        "inject-realm", help="Embed the realm JSON into the ConfigMap manifest"
    )
    realm.add_argument("--template", default=settings.realm_template_file)
    realm.add_argument("--payload", default=settings.realm_payload_file)
    realm.add_argument("--output", default=settings.realm_output_file)
    realm.add_argument("--key", default=settings.realm_json_key, help="ConfigMap data key")
    realm.add_argument(
        "--indent",
        type=int,
        default=len(settings.injection_indent),
        help="Spaces prefixed to every payload line",
    )
    realm.set_defaults(handler=_cmd_inject_realm)

    uninstall = subparsers.add_parser(
        "uninstall", help="Remove the release and supporting resources"
    )
    _add_release_arguments(uninstall)
    uninstall.add_argument(
        "--delete-namespace",
        action="store_true",
        help="Also delete the namespace, after typing its name to confirm",
    )
    uninstall.add_argument(
        "--confirm-namespace",
        metavar="NAME",
        help="Confirm namespace deletion without a prompt",
    )
    uninstall.set_defaults(handler=_cmd_uninstall)

    https = subparsers.add_parser("https", help="Toggle managed HTTPS on the ingress")
    https.add_argument("action", choices=["enable", "disable"])
    _add_release_arguments(https)
    https.add_argument("-d", "--domain", help="Domain patched into the certificate")
    https.add_argument("--certificate-file", help="ManagedCertificate manifest")
    https.add_argument("--certificate-name", help="ManagedCertificate resource name")
    https.set_defaults(handler=_cmd_https)

    return parser


def _config_from_args(args: argparse.Namespace, **overrides) -> DeploymentConfig:
    return DeploymentConfig.from_settings(
        settings,
        namespace=args.namespace,
        release_name=args.release,
        **overrides,
    )


def _cmd_deploy(args: argparse.Namespace) -> int:
    config = _config_from_args(
        args,
        chart_ref=args.chart,
        chart_version=args.version,
        values_file=args.values_file,
        skip_realm=args.skip_realm,
        rollout_timeout_seconds=args.rollout_timeout,
    )
    supplied = {
        "project": args.project_id,
        "region": args.region,
        "instance": args.sql_instance,
        "domain": args.domain,
        "staticIpName": args.ip_name,
        "serviceAccountName": args.service_account,
        "gsaEmail": args.gsa_email,
        "deploymentType": args.deployment_type,
        "protocol": args.protocol,
    }
    params = DeploymentParameters.build(
        **{key: value for key, value in supplied.items() if value is not None}
    )

    summary = DeploymentPipeline(config, params).run()
    for line in summary.render():
        print(line)
    print("Deployment completed!")
    return EXIT_SUCCESS


def _cmd_inject_realm(args: argparse.Namespace) -> int:
    inject_file(
        args.template,
        args.payload,
        args.output,
        anchor_key=args.key,
        indent=" " * args.indent,
    )
    print(f"Created {args.output}")
    return EXIT_SUCCESS


def confirm_namespace_deletion(
    namespace: str,
    confirmation: str | None = None,
    prompt: Callable[[str], str] = input,
) -> bool:
    """
    Ask the user to type the namespace name before it is deleted.

    Args:
        namespace: Namespace to delete
        confirmation: Pre-supplied confirmation; skips the prompt when set
        prompt: Function reading the typed answer

    Returns:
        True only when the answer matches the namespace name exactly
    """
    if confirmation is None:
        try:
            confirmation = prompt(
                f"Type the namespace name '{namespace}' to confirm its deletion: "
            ).strip()
        except EOFError:
            return False
    return confirmation == namespace


def _cmd_uninstall(args: argparse.Namespace) -> int:
    config = _config_from_args(args)

    delete_namespace = False
    if args.delete_namespace or args.confirm_namespace is not None:
        delete_namespace = confirm_namespace_deletion(
            config.namespace, args.confirm_namespace
        )
        if not delete_namespace:
            print(
                f"Namespace {config.namespace} kept: confirmation did not match",
                file=sys.stderr,
            )

    report = Teardown(config).run(delete_namespace=delete_namespace)
    for step in report.steps:
        status = "ok" if step.ok else "FAILED"
        print(f"{step.name}: {status} {step.message or ''}".rstrip())
    for step in report.failed:
        print(f"ERROR [{step.error.category}]: {step.error}", file=sys.stderr)
    print("Note: the Cloud SQL instance was not deleted.")
    return EXIT_SUCCESS if report.ok else EXIT_FAILURE


def _cmd_https(args: argparse.Namespace) -> int:
    config = _config_from_args(
        args,
        certificate_file=args.certificate_file,
        certificate_name=args.certificate_name,
    )
    toggle = HttpsToggle(
        ResourceReconciler(),
        namespace=config.namespace,
        ingress_name=config.release_name,
        certificate_name=config.certificate_name,
    )
    if args.action == "enable":
        toggle.enable(config.certificate_file, domain=args.domain)
        print("HTTPS enabled. Certificate provisioning may take some time.")
    else:
        toggle.disable()
        print("HTTPS disabled.")
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_structured_logging(
        log_level=settings.log_level,
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
    )
    set_correlation_id(generate_correlation_id())

    try:
        return args.handler(args)
    except DeployerError as e:
        print(f"ERROR [{e.category}]: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (KeyboardInterrupt, TerminationRequested) as e:
        print(f"Interrupted: {str(e) or 'keyboard interrupt'}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
