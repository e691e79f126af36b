"""
What is needed to connect to the API server, however it was obtained.

Only the data usable by a plain HTTPS client are kept: the server's URL,
the TLS verification material, the client certificate, and either a bearer
token or a username with a password. Anything requiring extra logic
(exec-plugins, token refreshing) is out of scope.

.. seealso::
    :mod:`piggybacking` and :mod:`auth`.
"""
import dataclasses


class LoginError(Exception):
    """ No usable credentials are found, or they are malformed. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    server: str  # e.g. "https://10.0.0.1:6443"
    ca_path: str | None = None
    ca_data: str | bytes | None = None  # PEM or base64-encoded PEM
    insecure: bool | None = None
    username: str | None = None
    password: str | None = None
    token: str | None = None
    certificate_path: str | None = None
    certificate_data: str | bytes | None = None
    private_key_path: str | None = None
    private_key_data: str | bytes | None = None
