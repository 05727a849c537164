"""Errors raised by the text intelligence layer."""


class IntelligenceError(Exception):
    """Base class for language-model and embedding failures."""

    pass


class LLMResponseError(IntelligenceError):
    """The model answered, but not with the structured output we asked for."""

    def __init__(self, message: str, response_text: str = ""):
        super().__init__(message)
        self.response_text = response_text


class EmbeddingError(IntelligenceError):
    """An embedding could not be produced."""

    pass
