# app/errors.py


class ConfigError(RuntimeError):
    """Missing or invalid configuration. Fatal at startup, never raised per post."""


class PublishError(Exception):
    """Base for anything that makes a single publish attempt fail."""


# --- resolution errors ---

class UnsupportedAssetFormat(PublishError):
    pass


class BlobUploadFailed(PublishError):
    pass


class AccountNotFound(PublishError):
    pass


class NoAccountConnected(PublishError):
    pass


# --- protocol errors ---

class ContainerCreationFailed(PublishError):
    pass


class ContainerRejected(PublishError):
    pass


class PublishTimeout(PublishError):
    pass


class PublishRejected(PublishError):
    pass


# --- platform / transport errors ---

class PlatformError(PublishError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(PlatformError):
    pass


class AuthFailed(PlatformError):
    pass
