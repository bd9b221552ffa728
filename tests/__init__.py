"""
Tests package - Test suite for the Keycloak deployer.

Contains:
- unit/: Unit tests for templating, reconciliation and the CLI
- fixtures/: Sample manifests and kubernetes test helpers
"""
