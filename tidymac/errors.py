"""Request-level errors.

Item-level problems (one unreadable cache, one file that refuses to move) are
reported inside results and never raised. The exceptions below abort a whole
request before or while it mutates anything, and carry a stable ``code`` that
the bridge copies into the error envelope.
"""

from __future__ import annotations


class TidyMacError(Exception):
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnknownProfile(TidyMacError):
    code = "unknown_profile"


class UnknownMode(TidyMacError):
    code = "unknown_mode"


class InvalidSelection(TidyMacError):
    code = "invalid_selection"


class SessionNotFound(TidyMacError):
    code = "session_not_found"


class AppNotFound(TidyMacError):
    code = "app_not_found"


class LedgerBusy(TidyMacError):
    code = "ledger_busy"


class LedgerError(TidyMacError):
    code = "ledger_error"


class ConfigError(TidyMacError):
    code = "config_error"


class UnknownRiskTier(TidyMacError):
    code = "unknown_risk_tier"
