#!/usr/bin/env python3


class MirrorSelectError(Exception):
    """Base class of errors that abort a mirror-select run."""


class ConfigError(MirrorSelectError):
    pass


class PrivilegeError(MirrorSelectError):
    pass


class DistributionError(MirrorSelectError):
    """Distribution identity could not be discovered."""


class UnsupportedDistributionError(DistributionError):
    """Distribution family has no entries in the mirror catalog."""


class CatalogError(MirrorSelectError):
    """Mirror catalog data violates its own invariants."""


class TransactionStateError(MirrorSelectError):
    """A transaction step was invoked from the wrong state."""


class CleanupError(MirrorSelectError):
    """A required source file could not be removed before writing."""


class VerificationError(MirrorSelectError):
    """The written sources file failed its post-write checks."""


class RefreshError(MirrorSelectError):
    """The package index refresh failed; previous sources were restored."""
