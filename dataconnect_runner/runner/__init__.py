"""Run orchestration for the DataConnect browser runner.

This package provides the run supervisor (lifecycle and mode switches),
the connector harness, event serialization and the stdin/stdout protocol
server.
"""

from .events import EventEmitter
from .harness import ConnectorHarness, unwrap_result
from .protocol import ProtocolServer, system_info
from .state import BrowserSession, RunState
from .supervisor import RunSupervisor

__all__ = [
    'EventEmitter',
    'ConnectorHarness',
    'unwrap_result',
    'ProtocolServer',
    'system_info',
    'BrowserSession',
    'RunState',
    'RunSupervisor',
]
