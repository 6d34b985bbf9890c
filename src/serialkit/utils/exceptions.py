"""exceptions raised by serialkit codecs and the persistence layer"""

class SerialkitError(Exception):
    """Base class for serialkit failures."""
    pass


class MarkupEncodeError(SerialkitError):
    """Raised when a value cannot be written as structured markup."""
    pass


class MarkupDecodeError(SerialkitError):
    """Raised when a markup file is malformed or does not match the declared type."""
    pass


class FileRetrievalError(SerialkitError):
    """Raised when a file could neither be created nor read back by load_or_create."""
    pass
