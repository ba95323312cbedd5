class AppError(Exception):
    """Base app exception."""


class ValidationError(AppError):
    pass


class ConfigurationError(AppError):
    pass


class ExternalServiceError(AppError):
    pass


class TransportError(ExternalServiceError):
    """Network failure or timeout talking to a remote collaborator."""


class UnparsableResponseError(ExternalServiceError):
    """The language model answered in a shape we could not read."""


class RepositoryError(AppError):
    pass


class SignatureVerificationError(AppError):
    pass
