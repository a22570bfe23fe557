"""panewatch - status dashboard engine for AI coding agents running in tmux.

Key Components:
    - detection: Pane snapshots, status variants and the status engine
    - profiles: Agent profile registry and pane matcher
    - monitoring: Background monitor loop, tree channel and selection handling
    - tmux_client: libtmux/psutil access to panes and processes
"""

__version__ = "0.1.0"

from panewatch.config import MonitorConfig, load_config
from panewatch.detection import AgentStatus, AgentTree, MonitoredAgent, PaneSnapshot, StatusEngine
from panewatch.errors import ConfigurationError, PanewatchError, PatternTimeout, TransientIoError
from panewatch.monitoring import MonitorLoop, TreeChannel
from panewatch.profiles import AgentMatcher, ProfileRegistry, load_registry

__all__ = [
    "AgentMatcher",
    "AgentStatus",
    "AgentTree",
    "ConfigurationError",
    "MonitorConfig",
    "MonitorLoop",
    "MonitoredAgent",
    "PaneSnapshot",
    "PanewatchError",
    "PatternTimeout",
    "ProfileRegistry",
    "StatusEngine",
    "TransientIoError",
    "TreeChannel",
    "load_config",
    "load_registry",
]
