"""Exception types for odssim-core.

This module defines the exception hierarchy used throughout the simulator.
All odssim exceptions inherit from OdsSimError, allowing consumers to catch all
simulator-specific errors with a single except clause.

Exception hierarchy:
    OdsSimError (base)
    +-- ConfigurationError: Missing or invalid handler configuration
    +-- ProtocolError: Malformed command frames
    +-- DeploymentError: Deployment script could not be started
"""


class OdsSimError(Exception):
    """Base exception for all odssim errors.

    This is the root of the odssim exception hierarchy. Catch this to handle
    any simulator-specific error.
    """


class ConfigurationError(OdsSimError):
    """Raised when the handler configuration cannot be loaded.

    This covers a missing configuration file, content that is not a mapping,
    and fields with invalid types or values. It is fatal at startup.
    """


class ProtocolError(OdsSimError):
    """Raised when a command frame cannot be parsed.

    The dispatcher never lets this escape to a session; it is converted into
    a protocol-level negative response.
    """


class DeploymentError(OdsSimError):
    """Raised when the external deployment script cannot be started.

    The deployment collaborator is fire-and-forget, so this is logged at
    startup and never stops the server.
    """
