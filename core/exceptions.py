class QuizAppError(Exception):
    """Base class for errors raised by the quiz services."""


class ValidationError(QuizAppError):
    """Malformed quiz, question or answer input."""


class NotFoundError(QuizAppError):
    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class PersistenceError(QuizAppError):
    """The database or lock backend failed."""


class SubmissionFailedError(PersistenceError):
    MESSAGE = "Failed to submit quiz attempt. Please try again."

    def __init__(self):
        super().__init__(self.MESSAGE)
