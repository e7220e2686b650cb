# domain errors for the reflection pipeline
# services raise these, routers translate each one into an http response


class JournalError(Exception):
    """base class for every pipeline error"""


class Unauthorized(JournalError):
    """no valid session"""


class ValidationError(JournalError):
    """entry text is empty or out of bounds"""


class RateLimited(JournalError):
    """cooldown still active for this user"""

    def __init__(self, seconds_remaining: int):
        self.seconds_remaining = seconds_remaining
        super().__init__(
            f"Please wait {seconds_remaining} seconds before submitting another entry"
        )


class SchemaViolation(JournalError):
    """a reflection (model output or client edit) fails its structural bounds"""


class GenerationFailure(JournalError):
    """model unreachable, timed out, or both attempts produced invalid output"""


class PersistenceFailure(JournalError):
    pass


class Forbidden(JournalError):
    pass


class NotFound(JournalError):
    pass
