"""
Exceptions for the Shift Rotation Engine

Lookup misses are never exceptions: template and team lookups return None.
"""


class ShiftRotationError(Exception):
    """Base exception for shift rotation operations"""
    pass


class ConfigurationUnavailableError(ShiftRotationError):
    """Raised when no template source (remote, persisted, defaults) could be used"""
    pass


class InvalidRotationInputError(ShiftRotationError, ValueError):
    """Raised for invalid cycle lengths, crew rosters or team compositions"""
    pass


class InvalidTemplateError(ShiftRotationError, ValueError):
    """Raised when a shift template violates its timing invariants"""
    pass


class DuplicateTemplateError(ShiftRotationError, ValueError):
    """Raised when registering a template whose name is already taken"""
    pass


class TemplateParseError(ShiftRotationError):
    """Raised when a template document cannot be parsed or validated"""
    pass


class TemplateStoreError(ShiftRotationError):
    """Raised when the persisted template cache cannot be read or written"""
    pass


class TemplateMigrationError(TemplateStoreError):
    """Raised when the persisted cache schema is unreadable"""
    pass


class StopApplicationError(ShiftRotationError):
    """Raised when a stop interval cannot be applied to a month"""
    pass


class InvalidStopIntervalError(StopApplicationError, ValueError):
    """Raised when a stop interval is malformed"""
    pass


class SettingsError(ShiftRotationError):
    """Raised when the settings file is corrupted"""
    pass
