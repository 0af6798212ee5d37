"""
Position Sources Package

Contains the position source implementations:
- PositionSource: Abstract base class with subscription bookkeeping
- NMEAPositionSource: NMEA-0183 GPS receiver over a line transport
- ReplayPositionSource: Recorded track file played back at a fixed interval
"""

from .base_source import ErrorCallback, PositionCallback, PositionSource, SubscriptionHandle
from .nmea_parser import NMEAFix, NMEAParser, validate_checksum
from .nmea_source import NMEAPositionSource
from .replay_source import ReplayPositionSource, parse_track
from .transports import BaseLineTransport, SerialLineTransport

__all__ = [
    'PositionCallback',
    'ErrorCallback',
    'PositionSource',
    'SubscriptionHandle',
    'NMEAFix',
    'NMEAParser',
    'validate_checksum',
    'NMEAPositionSource',
    'ReplayPositionSource',
    'parse_track',
    'BaseLineTransport',
    'SerialLineTransport',
]
