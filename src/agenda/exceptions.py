#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
class AgendaError(Exception):
    pass


class ValidationError(AgendaError, ValueError):
    """Raised when an occurrence or one of its mutations would break an invariant.
    The occurrence is left untouched when this is raised."""


class NotFoundError(AgendaError, LookupError):
    """Raised when an occurrence id does not resolve in the store. Callers
    can render this as "already removed" rather than as a transient failure."""

    def __init__(self, occurrence_id: int):
        super().__init__(f"No occurrence with id {occurrence_id} was found.")
        self.occurrence_id = occurrence_id


class InvalidScopeError(AgendaError, ValueError):
    pass
