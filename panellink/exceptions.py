"""Exceptions raised by the panel link engine and its store adapters.

Classes:
    PanelLinkError:
        Generic base class for panel link exceptions.

    PanelValidationError:
        Raised on malformed input (empty locator, TTL out of range, empty update).

    PanelNotFoundError:
        Raised when a panel is absent, expired or its id is malformed.
        The three cases are deliberately indistinguishable to callers.

    IdGenerationError:
        Raised when no unused panel id was found within the attempt budget.

    StoreUnavailableError:
        Raised when the authoritative store keeps failing after retries.

    PanelAlreadyExistsError:
        Raised by the store adapter when an insert hits an existing primary key.

    SweepInProgressError:
        Raised when an expiry sweep is requested while another one is running.

Example:
    >>> from panellink.exceptions import StoreUnavailableError
    >>> raise StoreUnavailableError("get", "abcdEFGH12345678")
    Traceback (most recent call last):
        ...
    panellink.exceptions.StoreUnavailableError: store operation 'get' failed for panel abcdEFGH12345678
"""

__all__ = [
    "PanelLinkError",
    "PanelValidationError",
    "PanelNotFoundError",
    "IdGenerationError",
    "StoreUnavailableError",
    "PanelAlreadyExistsError",
    "SweepInProgressError",
]


class PanelLinkError(Exception):
    """Generic base class for panel link exceptions."""

    pass


class PanelValidationError(PanelLinkError):
    """Exception raised when caller input is malformed."""

    pass


class PanelNotFoundError(PanelLinkError):
    """Exception raised when a panel does not exist, has expired or has a malformed id."""

    def __init__(self, panel_id: str | None = None):
        self.panel_id = panel_id
        super().__init__("Panel not found")


class IdGenerationError(PanelLinkError):
    """Exception raised when every generated candidate id collided."""

    pass


class StoreUnavailableError(PanelLinkError):
    """Exception raised when the authoritative store fails after retries.

    e.g. connection refused, timeouts, dropped connections.
    """

    def __init__(self, operation: str, panel_id: str | None = None, detail: str | None = None):
        self.operation = operation
        self.panel_id = panel_id
        message = f"store operation '{operation}' failed"
        if panel_id is not None:
            message += f" for panel {panel_id}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class PanelAlreadyExistsError(PanelLinkError):
    """Exception raised when inserting a panel whose id is already taken."""

    pass


class SweepInProgressError(PanelLinkError):
    """Exception raised when a sweep is started while another is running."""

    pass
