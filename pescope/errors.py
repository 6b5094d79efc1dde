from __future__ import annotations


class PeScopeError(Exception):
    pass


class PeParseError(PeScopeError):
    """The input could not be opened or is not a well-formed PE image."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Error while opening file: {path}, reason: {reason}")
        self.path = path
        self.reason = reason


class NoImportsError(PeScopeError):
    def __init__(self, message: str = "No Import found in the file !"):
        super().__init__(message)
