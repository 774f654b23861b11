"""ZenFocus focus timer core: timer state machine, session ledger, persistence gateway, auth session."""

__version__ = "0.1.0"
