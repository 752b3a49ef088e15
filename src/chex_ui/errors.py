"""
Error Kinds
===========

Exceptions raised by the analysis pipeline. Every failure is terminal for the
current single-image request; nothing in the package retries.

Classes
-------
ChexError
    Base class for all pipeline errors
ImageLoadError
    The image could not be read or decoded
InferenceError
    The inference graph failed to load, lacks an expected output, or produced
    tensors of an unexpected shape
NetworkError
    A call to the remote inference service failed or returned an unusable body
"""


class ChexError(Exception):
    """Base class for pipeline errors."""


class ImageLoadError(ChexError):
    """Raised when an image source cannot be read or decoded."""


class InferenceError(ChexError):
    """Raised when the inference graph cannot produce the requested tensors."""


class NetworkError(ChexError):
    """
    Raised when a request to the inference service fails.

    Parameters
    ----------
    message : str
        Human readable description
    status_code : int, optional
        HTTP status code, if a response was received
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
