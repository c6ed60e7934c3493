"""
Domain errors raised by the response-flow services.

Endpoints translate these into HTTP errors; quota-triggered termination
is a normal return value and never an exception.
"""


class SurveyFlowError(Exception):
    """Base class for expected, meaningful failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SurveyFlowError):
    """Rejected input: unanswered required question, malformed answer,
    condition or action, or a survey that is not accepting responses."""


class NotFoundError(SurveyFlowError):
    """Referenced survey, question, rule or quota does not exist."""
