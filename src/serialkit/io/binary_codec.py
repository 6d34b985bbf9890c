"""Binary codec: pickle streams for every value that is not written as markup."""
from __future__ import annotations
from typing import IO, Any
import pickle


def encode(stream: IO[bytes], value: Any, protocol: int = pickle.HIGHEST_PROTOCOL) -> None:
    """Pickle ``value`` into ``stream``."""
    pickle.dump(value, stream, protocol=protocol)


def decode(stream: IO[bytes]) -> Any:
    """Unpickle one value from ``stream``; the result is returned as-is, None included."""
    return pickle.load(stream)
