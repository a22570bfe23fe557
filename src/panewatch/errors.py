"""Exception hierarchy for panewatch.

Only genuine failures are exceptions. A pane that no profile recognises, or a
buffer that no state rule classifies, is an ordinary outcome and is reported
through return values instead.
"""


class PanewatchError(Exception):
    """Base class for all panewatch errors."""


class ConfigurationError(PanewatchError):
    """Invalid profile or application configuration.

    Raised at load time only. A registry that was built without raising this
    never carries an uncompilable or rejected pattern.
    """


class TransientIoError(PanewatchError):
    """A tmux listing, capture or send-keys call failed.

    The monitor loop logs these and retries on the next tick.
    """


class PatternTimeout(PanewatchError):
    """Detection for a single pane exceeded its time budget."""
