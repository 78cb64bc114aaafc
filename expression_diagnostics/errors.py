"""Exception types raised by the diagnostics services."""


class DiagnosticsConfigError(Exception):
    """Raised at construction time for unusable configuration or collaborators."""
    pass
