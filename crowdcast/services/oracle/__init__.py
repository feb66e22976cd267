from .client import OracleClient, OracleRequest
from .exceptions import OracleParseError, OracleTransportError
from .parsing import parse_json_object

__all__ = [
    "OracleClient",
    "OracleRequest",
    "OracleParseError",
    "OracleTransportError",
    "parse_json_object",
]
