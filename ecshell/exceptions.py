class EcshellError(Exception):
    """Base error; ``exit_code`` is what the process exits with."""

    exit_code = 1


class DependencyMissing(EcshellError):
    exit_code = 2


class ConfigNotFound(EcshellError):
    exit_code = 3


class ConfigInvalid(EcshellError):
    exit_code = 4


class NoMatchingContainers(EcshellError):
    exit_code = 5


class NoAddressAtIndex(EcshellError):
    exit_code = 6


class NoMatchingContainerOnHost(EcshellError):
    exit_code = 7


class MissingCommand(EcshellError):
    exit_code = 8


class QueryFailure(EcshellError):
    exit_code = 9


class AWSSessionError(EcshellError):
    exit_code = 10
