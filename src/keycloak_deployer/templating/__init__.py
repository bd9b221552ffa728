"""
Templating package - Pure text transformations applied before any cluster call.

- injector: splices a payload under a block-scalar anchor line
- patcher: block-scoped replacement of parameter values
"""

from .injector import inject, inject_file
from .patcher import (
    CERTIFICATE_FIELDS,
    VALUES_FIELDS,
    FieldPatch,
    PatchResult,
    patch,
    patch_file,
)

__all__ = [
    "inject",
    "inject_file",
    "FieldPatch",
    "PatchResult",
    "patch",
    "patch_file",
    "VALUES_FIELDS",
    "CERTIFICATE_FIELDS",
]
