"""Error taxonomy for the simulation core.

Every failure the core reports to its caller is one of these exceptions.
The API layer maps each class onto an HTTP status in api/exceptions.py.
"""


class SimulationError(Exception):
    """Base class for all errors raised by the simulation core.

    Args:
        message: Human-readable description of the failure.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(SimulationError):
    """A scenario, session, event or drug does not exist.

    Args:
        resource_type: Kind of resource that was looked up.
        resource_id: Identifier that failed to resolve.
        message: Optional override for the default message.
    """

    def __init__(self, resource_type: str, resource_id: str, message: str | None = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message or f"{resource_type} with ID {resource_id} not found")


class ForbiddenError(SimulationError):
    """The requester is not allowed to perform the operation."""


class ConflictError(SimulationError):
    """A duplicate open session, or a stale write to the repository."""


class InvalidStateError(SimulationError):
    """The operation is illegal for the session's current status."""


class InvalidStateTransitionError(InvalidStateError):
    """A lifecycle transition that the session state machine does not allow.

    Args:
        current: Status the session is in.
        requested: Status the caller tried to move to.
    """

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition session from {current} to {requested}")


class InvalidInputError(SimulationError):
    """Malformed parameters, such as a severity outside [0, 1]."""


class BlockedError(SimulationError):
    """Fast-forward refused because a non-skippable action is still running."""


class ServiceUnavailableError(SimulationError):
    """An external collaborator (the patient text-generation oracle) failed."""
