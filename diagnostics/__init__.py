from .capture import capture_on_failure
from .types import DiagnosticContext, DiagnosticOptions

__all__ = ["DiagnosticContext", "DiagnosticOptions", "capture_on_failure"]
