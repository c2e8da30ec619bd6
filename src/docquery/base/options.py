# src/docquery/base/options.py
import logging
from collections.abc import Mapping
from typing import Any

from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from .exceptions import InvalidArgumentError

log = logging.getLogger(__name__)

READ_PREFERENCE_ALIASES = {
    "p": "primary",
    "pp": "primaryPreferred",
    "s": "secondary",
    "sp": "secondaryPreferred",
    "n": "nearest",
}

READ_CONCERN_ALIASES = {
    "l": "local",
    "a": "available",
    "m": "majority",
    "lz": "linearizable",
    "s": "snapshot",
}

_WRITE_CONCERN_KEYS = ("w", "j", "wtimeout")


def expand_read_preference(pref: Any) -> Any:
    if isinstance(pref, str):
        return READ_PREFERENCE_ALIASES.get(pref, pref)
    return pref


def expand_read_concern(level: Any) -> Any:
    """Returns ``{"level": ...}`` for strings; documents pass through."""
    if isinstance(level, ReadConcern):
        return dict(level.document)
    if isinstance(level, str):
        return {"level": READ_CONCERN_ALIASES.get(level, level)}
    return level


class OptionsMixin:
    """Execution option setters for ``Query``."""

    def _set_option(self, name: str, value: Any):
        self._options[name] = value
        log.debug(f"Option '{name}' set to {value!r}")
        return self

    def limit(self, value):
        self._check_permitted("limit")
        return self._set_option("limit", value)

    def skip(self, value):
        self._check_permitted("skip")
        return self._set_option("skip", value)

    def batch_size(self, value):
        self._check_permitted("batch_size")
        return self._set_option("batch_size", value)

    def max_scan(self, value):
        self._check_permitted("max_scan")
        return self._set_option("max_scan", value)

    def comment(self, value):
        return self._set_option("comment", value)

    def max_time_ms(self, ms):
        return self._set_option("max_time_ms", ms)

    max_time = max_time_ms

    def snapshot(self, value=True):
        self._check_permitted("snapshot")
        return self._set_option("snapshot", bool(value))

    def tailable(self, value=True):
        self._check_permitted("tailable")
        return self._set_option("tailable", bool(value))

    def slave_ok(self, value=True):
        return self._set_option("slave_ok", bool(value))

    def hint(self, *args):
        """
        Sets an index hint, either an index name or a key mapping.

        Mappings merge into a previously set mapping hint.
        """
        if not args:
            return self
        self._check_permitted("hint")
        value = args[0]

        if isinstance(value, Mapping):
            current = self._options.get("hint")
            if not isinstance(current, dict):
                current = {}
            current.update(value)
            return self._set_option("hint", current)
        if isinstance(value, str):
            return self._set_option("hint", value)
        raise InvalidArgumentError(f"Invalid hint. {value!r}")

    def read(self, pref):
        """
        Sets the read preference.

        Short aliases are expanded: ``p`` primary, ``pp`` primaryPreferred,
        ``s`` secondary, ``sp`` secondaryPreferred, ``n`` nearest. pymongo
        read preference objects are stored as given.
        """
        return self._set_option("read_preference", expand_read_preference(pref))

    set_read_preference = read

    def read_concern(self, level):
        """
        Sets the read concern level.

        Aliases: ``l`` local, ``a`` available, ``m`` majority,
        ``lz`` linearizable, ``s`` snapshot.
        """
        return self._set_option("read_concern", expand_read_concern(level))

    r = read_concern

    def write_concern(self, concern):
        """
        Sets the write concern.

        A mapping or ``pymongo.WriteConcern`` only sets the ``w``, ``j`` and
        ``wtimeout`` keys it contains. Any other value is the ``w`` value,
        with ``"m"`` meaning ``"majority"``.
        """
        if isinstance(concern, WriteConcern):
            concern = concern.document
        if isinstance(concern, Mapping):
            for key in _WRITE_CONCERN_KEYS:
                if key in concern:
                    self._set_option(key, concern[key])
            return self
        return self._set_option("w", "majority" if concern == "m" else concern)

    w = write_concern

    def j(self, value):
        return self._set_option("j", value)

    def wtimeout(self, ms):
        return self._set_option("wtimeout", ms)

    w_timeout = wtimeout

    def collation(self, value):
        return self._set_option("collation", value)

