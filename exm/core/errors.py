"""EXM error types."""

from typing import Optional


class ExmError(Exception):
    """Base error for EXM."""


class NotFound(ExmError):
    """Raised when an extension is absent from every scope."""

    def __init__(self, extension_id: str, namespace: str, module_name: str):
        self.extension_id = extension_id
        self.namespace = namespace
        self.module_name = module_name
        super().__init__(
            f"Required extension '{extension_id}' not found in namespace '{namespace}', "
            f"try installing it first (package '{module_name}')."
        )


class ShapeMismatch(ExmError):
    """Raised when a loaded module is not the requested EXM extension."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class DuplicateRegistration(ExmError):
    """Raised when a namespace, extension or master is registered twice."""

    def __init__(self, key: str, what: str = "namespace"):
        self.key = key
        self.what = what
        super().__init__(f"{what.capitalize()} '{key}' is already registered")


class MissingRequiredOption(ExmError):
    """Raised when a registration lacks a mandatory option."""

    def __init__(self, option: str, what: str = "namespace"):
        self.option = option
        super().__init__(f"Registering a {what} requires a string '{option}' option")


class PersistenceFailure(ExmError):
    """A config file could not be written. Logged by the config store, never raised."""

    def __init__(self, path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Can't write {path}: {cause}")


class ExternalToolFailure(ExmError):
    """Raised when the package manager command fails."""

    def __init__(self, command: list[str], returncode: Optional[int], stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command failed ({returncode}): {' '.join(command)}: {stderr.strip()[:500]}"
        )


class InvalidScope(ExmError, ValueError):
    """Raised for a scope name other than local, user or system."""
