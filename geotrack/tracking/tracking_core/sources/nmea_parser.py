"""Decoding of the NMEA 0183 sentences a GPS receiver streams.

Position comes from RMC, GGA and GLL. GGA and GSA also report the
horizontal dilution of precision, which becomes the fix accuracy. Any other
talker sentence decodes to None.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from functools import reduce
from typing import Callable, Optional, TypeVar

from ..constants import NMEA_UERE_M

_T = TypeVar("_T")

_LAT_DEGREE_DIGITS = 2
_LON_DEGREE_DIGITS = 3
_NEGATIVE_HEMISPHERES = frozenset("SW")


def _number(text: Optional[str], cast: Callable[[str], _T]) -> Optional[_T]:
    if not text:
        return None
    try:
        return cast(text)
    except ValueError:
        return None


def _coordinate(text: Optional[str], hemisphere: Optional[str], degree_digits: int) -> Optional[float]:
    """``ddmm.mmmm`` / ``dddmm.mmmm`` plus hemisphere letter -> signed decimal degrees."""
    if not text or not hemisphere or len(text) < degree_digits:
        return None
    whole = _number(text[:degree_digits], int)
    minutes = _number(text[degree_digits:], float)
    if whole is None or minutes is None:
        return None
    degrees = whole + minutes / 60.0
    return -degrees if hemisphere.upper() in _NEGATIVE_HEMISPHERES else degrees


def _utc_time(text: Optional[str]) -> Optional[dt.time]:
    """``hhmmss[.sss]`` -> time of day in UTC."""
    text = (text or "").strip()
    if not text:
        return None
    clock, _, fraction = text.partition(".")
    clock = clock.rjust(6, "0")
    try:
        return dt.time(
            int(clock[0:2]),
            int(clock[2:4]),
            int(clock[4:6]),
            int(fraction[:6].ljust(6, "0")),
            tzinfo=dt.timezone.utc,
        )
    except ValueError:
        return None


def _ddmmyy(text: Optional[str]) -> Optional[dt.date]:
    if not text or len(text) != 6 or not text.isdigit():
        return None
    try:
        return dt.date(2000 + int(text[4:]), int(text[2:4]), int(text[:2]))
    except ValueError:
        return None


def validate_checksum(sentence: str) -> bool:
    """True when the ``*hh`` suffix matches the XOR of the characters between ``$`` and ``*``."""
    if not sentence.startswith("$"):
        return False
    body, star, suffix = sentence[1:].partition("*")
    if not star:
        return False
    declared = _number(suffix[:2], lambda hex_text: int(hex_text, 16))
    if declared is None:
        return False
    return reduce(lambda acc, char: acc ^ ord(char), body, 0) == declared


@dataclass(frozen=True, slots=True)
class NMEAFix:
    """One decoded position sentence; ``valid`` mirrors the receiver's status flag."""

    sentence_type: str
    valid: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    hdop: Optional[float] = None
    timestamp: Optional[dt.datetime] = None

    @property
    def has_position(self) -> bool:
        return self.valid and None not in (self.latitude, self.longitude)

    @property
    def accuracy_m(self) -> Optional[float]:
        return None if self.hdop is None else self.hdop * NMEA_UERE_M


class NMEAParser:
    """Turns sentences into :class:`NMEAFix` values.

    RMC is the only sentence carrying a date and GGA/GSA the only ones
    carrying HDOP, so the parser keeps the latest of each and applies them to
    the sentences that lack them. Before any RMC the host's UTC date is used.
    """

    # Minimum field count after the header, per sentence
    _MIN_FIELDS = {"RMC": 9, "GGA": 8, "GLL": 6, "GSA": 16}

    def __init__(self, validate_checksums: bool = True):
        self.validate_checksums = validate_checksums
        self._date: Optional[dt.date] = None
        self._hdop: Optional[float] = None

    def reset(self) -> None:
        """Forget the remembered date and HDOP, e.g. after a reconnect."""
        self._date = None
        self._hdop = None

    def parse_sentence(self, sentence: str) -> Optional[NMEAFix]:
        """Decode one line; None for corrupt lines and sentences without a position."""
        if not sentence or sentence[0] != "$":
            return None
        if self.validate_checksums and not validate_checksum(sentence):
            return None

        header, *fields = sentence[1:].partition("*")[0].split(",")
        # "GPRMC", "GNRMC" -> "RMC"
        kind = header[-3:].upper()
        if len(fields) < self._MIN_FIELDS.get(kind, 1 << 30):
            return None
        return getattr(self, f"_decode_{kind.lower()}")(fields)

    def _remember_hdop(self, text: str) -> Optional[float]:
        hdop = _number(text, float)
        if hdop is not None:
            self._hdop = hdop
        return hdop

    def _timestamp(self, text: str) -> Optional[dt.datetime]:
        clock = _utc_time(text)
        if clock is None:
            return None
        return dt.datetime.combine(self._date or dt.datetime.now(dt.timezone.utc).date(), clock)

    def _decode_rmc(self, fields: list[str]) -> NMEAFix:
        self._date = _ddmmyy(fields[8]) or self._date
        return NMEAFix(
            "RMC",
            valid=fields[1].upper() == "A",
            latitude=_coordinate(fields[2], fields[3], _LAT_DEGREE_DIGITS),
            longitude=_coordinate(fields[4], fields[5], _LON_DEGREE_DIGITS),
            hdop=self._hdop,
            timestamp=self._timestamp(fields[0]),
        )

    def _decode_gga(self, fields: list[str]) -> NMEAFix:
        quality = _number(fields[5], int) or 0
        return NMEAFix(
            "GGA",
            valid=quality > 0,
            latitude=_coordinate(fields[1], fields[2], _LAT_DEGREE_DIGITS),
            longitude=_coordinate(fields[3], fields[4], _LON_DEGREE_DIGITS),
            hdop=self._remember_hdop(fields[7]),
            timestamp=self._timestamp(fields[0]),
        )

    def _decode_gll(self, fields: list[str]) -> NMEAFix:
        return NMEAFix(
            "GLL",
            valid=fields[5].upper() == "A",
            latitude=_coordinate(fields[0], fields[1], _LAT_DEGREE_DIGITS),
            longitude=_coordinate(fields[2], fields[3], _LON_DEGREE_DIGITS),
            hdop=self._hdop,
            timestamp=self._timestamp(fields[4]),
        )

    def _decode_gsa(self, fields: list[str]) -> None:
        # DOP only; feeds the accuracy of later fixes
        self._remember_hdop(fields[15])
        return None


__all__ = ["NMEAFix", "NMEAParser", "validate_checksum"]
