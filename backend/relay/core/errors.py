class RelayError(Exception): ...


class AuthError(RelayError):
    """Missing or wrong shared credential on /upload."""


class StoreUnavailable(RelayError):
    """The metadata store could not be reached or refused the operation."""


class FileMissing(RelayError):
    """A transfer is registered but its stored file is gone."""


class KeySpaceExhausted(RelayError):
    """Every possible transfer key is currently active."""
