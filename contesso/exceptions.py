# exceptions.py
from typing import Optional


class ContessoError(Exception):
    """Base class for domain errors raised by the contest tracker."""


class SourceUnavailable(ContessoError):
    """An upstream contest listing could not be fetched (network, non-2xx, timeout, bad envelope)."""

    def __init__(self, platform: str, reason: str) -> None:
        self.platform = platform
        self.reason = reason
        super().__init__(f"{platform}: {reason}")


class InvalidContestRecord(ContessoError):
    """A single fetched record cannot be turned into a canonical contest."""

    def __init__(self, reason: str, platform: Optional[str] = None, native_id: Optional[str] = None) -> None:
        self.reason = reason
        self.platform = platform
        self.native_id = native_id
        where = f"{platform}:{native_id}" if platform else "record"
        super().__init__(f"{where}: {reason}")


class StoreUnavailable(ContessoError):
    """The persisted store could not be reached."""


class NotAuthenticated(ContessoError):
    """A bookmark mutation was attempted without a signed-in identity."""


class PermissionDenied(ContessoError):
    """A privileged write was attempted by a non-admin identity."""
