"""
Exceptions raised by the results app.

Identity problems on a report (missing student, term or session) use
django.core.exceptions.ValidationError like the rest of the project.
"""


class InvalidTransitionError(Exception):
    """A report card status change that the publication workflow does not allow."""

    def __init__(self, state, action, reason=''):
        self.state = state
        self.action = action
        self.reason = reason
        message = f"Cannot {action} a report in state '{state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
