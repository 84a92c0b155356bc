"""Error taxonomy shared by the catalog, installer and session layers."""

from typing import Optional


class ProvisionerError(Exception):
    """Base class for all provisioner errors."""


class ConfigurationError(ProvisionerError):
    """Invocation cannot proceed: missing credential, bad table, unbindable port."""


class AuthError(ProvisionerError):
    """A credential or principal was rejected. Never retried."""


class TransientError(ProvisionerError):
    """A network or service hiccup that survived every retry attempt."""

    def __init__(self, message: str, attempts: int = 0, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.cause = cause


class SchemaError(ProvisionerError):
    """A single catalog record could not be translated into a PackageSpec."""

    def __init__(self, record_id: str, reason: str):
        super().__init__(f"record {record_id or '<unknown>'}: {reason}")
        self.record_id = record_id
        self.reason = reason


class InstallError(ProvisionerError):
    """The install action for one package failed."""

    def __init__(self, package: str, reason: str):
        super().__init__(f"{package}: {reason}")
        self.package = package
        self.reason = reason


class RenderError(ProvisionerError):
    """The external document renderer failed or is missing."""


class SessionError(ProvisionerError):
    """Handling of one interactive connection failed."""

    def __init__(self, session_id: int, reason: str):
        super().__init__(f"session {session_id}: {reason}")
        self.session_id = session_id
        self.reason = reason
