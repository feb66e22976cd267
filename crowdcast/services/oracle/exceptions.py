from crowdcast.exceptions import MalformedOracleOutputError, TransientIOError


class OracleTransportError(TransientIOError):
    """The oracle endpoint could not be reached or returned an error."""

    pass


class OracleParseError(MalformedOracleOutputError):
    """Oracle text could not be repaired into a JSON object."""

    pass
