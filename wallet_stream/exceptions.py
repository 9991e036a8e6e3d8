"""
Exceptions raised by the wallet stream package.

Transport failures never surface as exceptions (they degrade to absent
results or reconnects). What is left is startup validation and payload shape.
"""


class WalletStreamError(Exception):
    """Base class for wallet stream errors."""


class ConfigurationError(WalletStreamError):
    """Invalid or incomplete configuration detected at startup."""


class PayloadError(WalletStreamError, ValueError):
    """Upstream payload does not have the expected shape."""
