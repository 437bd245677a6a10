"""Exceptions raised while applying post-setup configuration."""


class PostSetupError(Exception):
    """Base exception for all post-setup errors."""

    pass


class ConfigNotFound(PostSetupError):
    """Raised when the configuration file cannot be read."""

    def __init__(self, path, reason=None):
        if reason is None:
            message = f"Configuration file ({path}) not found!"
        else:
            message = f"Configuration file ({path}) could not be read: {reason}"
        super().__init__(message)
        self.path = path


class PrivilegeError(PostSetupError):
    """Raised when the tool is started without root privileges."""

    pass


class MissingSetting(PostSetupError):
    """Raised when a handler needs a configuration key that was never set."""

    def __init__(self, key: str):
        super().__init__(f"Missing configuration value: {key}")
        self.key = key


class LogFileUnavailable(PostSetupError):
    """Raised when the persistent log file cannot be opened."""

    pass


class BackupFailed(PostSetupError):
    """Raised when a file could not be backed up before it is modified."""

    pass


class ActionFailed(PostSetupError):
    """Raised when a confirmed sub-step fails to execute."""

    def __init__(self, description: str, tier, cause=None):
        message = f"Failed {description} ({tier.value.lower()})"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.description = description
        self.tier = tier
        self.cause = cause
