from datetime import datetime
from typing import Any, Dict, Optional, Type

from core.errors import AutomationError


class RunContext:
    """Diagnostic key/value bag for one automation run.

    One instance is created per controller and handed to every handler, so
    two controllers never see each other's values.
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id or f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        self._values: Dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def get_all(self) -> Dict[str, Any]:
        return dict(self._values)

    def clear(self) -> None:
        self._values.clear()

    def create_error(
        self,
        message: str,
        error_cls: Type[AutomationError] = AutomationError,
        recoverable: Optional[bool] = None,
        **extra: Any,
    ) -> AutomationError:
        """Build an error carrying a snapshot of the current context."""
        context = {"run_id": self.run_id, **self._values, **extra}
        return error_cls(message, recoverable=recoverable, context=context)
