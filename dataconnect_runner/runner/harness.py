"""Connector loading and invocation.

A connector is a Python file exposing ``run(page)``. The function may be a
plain function or a coroutine function; whatever it returns is awaited when
awaitable. Each load executes the file as a fresh, isolated module that is
not registered in ``sys.modules``.
"""

import importlib.util
import inspect
import logging
from pathlib import Path
from types import ModuleType
from typing import Any, Callable

from ..errors import ConnectorLoadError, ConnectorRuntimeError

logger = logging.getLogger(__name__)


ENTRY_POINT = "run"


def unwrap_result(result: Any) -> Any:
    """Reduce a ``{"success": True, "data": X}`` envelope to ``X``.

    Anything else is returned unchanged.
    """
    if isinstance(result, dict) and result.get("success") is True and "data" in result:
        return result["data"]
    return result


class ConnectorHarness:
    """Loads connector files and runs their entry point."""

    def __init__(self, entry_point: str = ENTRY_POINT):
        self.entry_point = entry_point

    def _module_name(self, path: Path) -> str:
        stem = "".join(c if c.isalnum() else "_" for c in path.stem)
        return f"dataconnect_connector_{stem}"

    def load(self, connector_path: str) -> Callable[..., Any]:
        """Load a connector file and return its entry point.

        Args:
            connector_path: Path to the connector ``.py`` file

        Returns:
            The connector's ``run`` callable

        Raises:
            ConnectorLoadError: If the file is missing, fails to import, or
                has no callable entry point
        """
        path = Path(connector_path)
        if not path.is_file():
            raise ConnectorLoadError(f"Connector not found: {connector_path}")

        spec = importlib.util.spec_from_file_location(self._module_name(path), path)
        if spec is None or spec.loader is None:
            raise ConnectorLoadError(f"Cannot load connector: {connector_path}")

        module: ModuleType = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise ConnectorLoadError(f"Failed to load connector {path.name}: {e}") from e

        entry = getattr(module, self.entry_point, None)
        if not callable(entry):
            raise ConnectorLoadError(
                f"Connector {path.name} does not define a callable '{self.entry_point}(page)'"
            )

        logger.info(f"Loaded connector {path.name}")
        return entry

    async def invoke(self, entry: Callable[..., Any], page: Any) -> Any:
        """Call the entry point with the Page API and return the unwrapped output.

        Raises:
            ConnectorRuntimeError: Wrapping any exception raised by connector code
        """
        logger.info("Calling connector function...")
        try:
            result = entry(page)
            if inspect.isawaitable(result):
                result = await result
        except ConnectorRuntimeError:
            raise
        except Exception as e:
            raise ConnectorRuntimeError(e) from e

        logger.info(f"Connector function completed with result: {'has result' if result is not None else 'None'}")
        return unwrap_result(result)
