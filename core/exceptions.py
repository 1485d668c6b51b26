class PlayEngineError(Exception):
    """Base class for errors raised by the play engine services."""


class NotFoundError(PlayEngineError):
    """A scheduled quiz, quiz, course or course session does not exist."""


class InvalidArgumentError(PlayEngineError):
    """A request argument is missing or malformed."""


class InternalError(PlayEngineError):
    """Storage, transaction or collaborator failure."""
