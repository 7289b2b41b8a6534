class LectureNotFoundError(Exception):
    """Raised when a lecture record does not exist."""

    pass


class SlideNotFoundError(Exception):
    """Raised when a slide record does not exist."""

    pass


class SlideImageNotFoundError(Exception):
    """Raised when a slide exists but has no rendered image."""

    pass


class EmptyCompletionError(Exception):
    """Raised when the generation provider returns no text."""

    pass


class TitleGenerationError(Exception):
    """Raised when every title inference attempt failed validation or errored."""

    pass


class ConversationStateError(Exception):
    """
    Raised when a conversational turn cannot be appended because the slide's
    content does not follow the summary/question/answer alternation.
    """

    pass


class InvalidAPIKeyError(Exception):
    """
    Raised when the provider API key is invalid or missing.
    This is a permanent error that should not trigger Pub/Sub retries.
    """

    pass
