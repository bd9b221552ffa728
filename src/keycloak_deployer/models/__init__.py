"""
Models package - Data model for templates, parameters and cluster resources.
"""

from .parameters import DeploymentConfig, DeploymentParameters
from .resources import (
    ReconcileOutcome,
    ReconcileResult,
    ResourceDescriptor,
    ResourceState,
)
from .template import Payload, Template, TemplateLine, join_lines, split_lines

__all__ = [
    "DeploymentConfig",
    "DeploymentParameters",
    "Payload",
    "ReconcileOutcome",
    "ReconcileResult",
    "ResourceDescriptor",
    "ResourceState",
    "Template",
    "TemplateLine",
    "join_lines",
    "split_lines",
]
