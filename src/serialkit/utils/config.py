"""Runtime settings shared by the serialkit codecs and the persistence facade."""
from __future__ import annotations
from dataclasses import dataclass, replace
import os
import pickle

_ENV_PREFIX = "SERIALKIT_"


@dataclass(frozen=True)
class SerializerConfig:
    """Configuration for saving/loading persisted values.

    Attributes
    ----------
    markup_suffix : str
        File suffix (matched case-insensitively) that selects the XML codec.
    pickle_protocol : int
        Protocol handed to ``pickle.dump`` by the binary codec.
    encoding : str
        Text encoding declared in written XML documents.
    lock_suffix : str
        Suffix of the sidecar file used for cross-process locking.
    lock_timeout : float
        Seconds to wait for a sidecar lock; ``-1`` waits forever.
    default_mode : str
        Binary write mode used when none is given (``"wb"`` or ``"xb"``).
    default_set_name : str
        Name given to the table set that wraps an unowned DataFrame.
    """
    markup_suffix: str = ".xml"
    pickle_protocol: int = pickle.HIGHEST_PROTOCOL
    encoding: str = "utf-8"
    lock_suffix: str = ".lock"
    lock_timeout: float = -1
    default_mode: str = "wb"
    default_set_name: str = "NewDataSet"

    @classmethod
    def from_env(cls) -> "SerializerConfig":
        """Build a config, overriding defaults with ``SERIALKIT_*`` variables.

        Recognised variables are ``SERIALKIT_MARKUP_SUFFIX``,
        ``SERIALKIT_PICKLE_PROTOCOL``, ``SERIALKIT_ENCODING``,
        ``SERIALKIT_LOCK_SUFFIX`` and ``SERIALKIT_LOCK_TIMEOUT``.

        Raises
        ------
        ValueError
            If a numeric variable cannot be parsed.
        """
        cfg = cls()
        overrides = {}
        for field_name, cast in (
            ("markup_suffix", str),
            ("pickle_protocol", int),
            ("encoding", str),
            ("lock_suffix", str),
            ("lock_timeout", float),
        ):
            raw = os.getenv(_ENV_PREFIX + field_name.upper())
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[field_name] = cast(raw.strip())
            except ValueError as error:
                raise ValueError(
                    f"Invalid {_ENV_PREFIX}{field_name.upper()} value: '{raw}'."
                ) from error
        if overrides:
            cfg = replace(cfg, **overrides)
        return cfg


DEFAULT_CONFIG = SerializerConfig()
