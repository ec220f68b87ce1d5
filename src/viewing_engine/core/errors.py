"""Error taxonomy for the booking engine."""


class ViewingEngineError(Exception):
    """Base class for all booking engine errors.

    Every engine error carries a human readable ``detail`` so the API and
    CLI layers can surface it without inspecting the exception type.
    """

    def __init__(self, detail: str = "Booking engine error"):
        self.detail = detail
        super().__init__(detail)


class SlotUnavailableError(ViewingEngineError):
    """The requested slot was taken or became unbookable.

    Recoverable: callers re-resolve availability and retry slot selection.
    """

    def __init__(self, detail: str = "Slot no longer available"):
        super().__init__(detail)


class AgentConflictError(ViewingEngineError):
    """The target agent already has an overlapping appointment."""

    def __init__(self, detail: str = "Agent has a conflicting appointment"):
        super().__init__(detail)


class InvalidTransitionError(ViewingEngineError):
    """An appointment cannot move from its current state to the requested one."""

    def __init__(self, detail: str = "Invalid appointment transition"):
        super().__init__(detail)


class PropertyAlreadySoldError(ViewingEngineError):
    """The property is sold or rented."""

    def __init__(self, detail: str = "Property is already sold"):
        super().__init__(detail)


class NotFoundError(ViewingEngineError):
    """A referenced entity does not exist."""

    def __init__(self, detail: str = "Not found"):
        super().__init__(detail)


class PermissionDeniedError(ViewingEngineError):
    """The acting user lacks the capability for the operation."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(detail)


class MessagingNotAllowedError(ViewingEngineError):
    """Messaging is closed for the appointment."""

    def __init__(self, detail: str = "Messaging is not available for this appointment"):
        super().__init__(detail)
