class StampWalletError(Exception):
    """Base error for the pass engine."""


class AuthenticationError(StampWalletError):
    """Pass id / authentication token pair did not match.

    Raised identically for unknown passes and wrong tokens so callers
    cannot probe which serial numbers exist.
    """


class PassNotFoundError(StampWalletError):
    pass


class IconNotFoundError(StampWalletError):
    pass


class IconRenderError(StampWalletError):
    """Icon artwork exists but could not be rasterized."""
