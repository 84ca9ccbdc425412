"""Error taxonomy shared by the directory, auth and session layers.

Route handlers turn every one of these into a redirect; none of them
ever reaches the client as a body or a stack trace.
"""


class SecretboardError(Exception):
    """Base class for application errors."""


class Conflict(SecretboardError):
    """A unique identity (username, external id) is already taken."""


class AuthFailed(SecretboardError):
    """Bad credentials, missing/stale session, or a failed OAuth callback."""


class NotFound(SecretboardError):
    """The user record an operation targets no longer exists."""


class TransientStoreError(SecretboardError):
    """Database or session store I/O failed."""


class LoginRequired(SecretboardError):
    """A protected route was requested without a valid session."""
