"""
GCN Alerting
Notice filtering, alert script launching and control command handling
"""

from .alert_filter import AlertFilter, FilterDecision
from .control_commands import ControlCommandHandler, CommandError, parse_command
from .script_launcher import ScriptLauncher, ScriptProcess

__all__ = [
    'AlertFilter', 'FilterDecision', 'ControlCommandHandler', 'CommandError',
    'parse_command', 'ScriptLauncher', 'ScriptProcess',
]
