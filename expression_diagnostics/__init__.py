"""
Expression diagnostics.

Finds redundant emotion/expression prototypes (overlap analysis) and missing
axes in the prototype weight space (axis gap analysis).
"""

from expression_diagnostics.config import (
    PrototypeOverlapConfig,
    load_config_from_env,
    validate_config,
    validate_config_or_raise,
)
from expression_diagnostics.errors import DiagnosticsConfigError

__version__ = "0.1.0"

__all__ = [
    "PrototypeOverlapConfig",
    "load_config_from_env",
    "validate_config",
    "validate_config_or_raise",
    "DiagnosticsConfigError",
    "__version__",
]
