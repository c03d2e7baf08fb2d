"""Error taxonomy for the audit engine.

ConfigError and its subclasses are fatal and abort a run before any service
is evaluated. ProbeError is raised by probe clients and is recovered per check.
PartialRunWarning marks a service that could not be fully evaluated.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for all audit engine errors."""


class ConfigError(AuditError):
    """Malformed or incomplete registry, check definitions or report input."""

    def __init__(self, message: str, problems: list[str] | None = None):
        self.problems = list(problems or [])
        if self.problems:
            message = message + ":\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class RegistryLoadError(ConfigError):
    pass


class CheckDefinitionsError(ConfigError):
    pass


class ReportLoadError(ConfigError):
    pass


class ProbeError(AuditError):
    """An external probe call failed in a way that is not a plain 'absent' answer."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PartialRunWarning(UserWarning):
    """A service could not be fully evaluated; the run continues."""

    def __init__(self, organization: str, service: str, message: str):
        super().__init__(f"{organization}/{service}: {message}")
        self.organization = organization
        self.service = service
        self.message = message
