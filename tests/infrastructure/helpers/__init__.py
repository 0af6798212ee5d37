"""Test helpers for the geotrack test suite.

Data Generators:
    calculate_nmea_checksum - Checksum of an NMEA sentence body
    nmea - Wrap a sentence body with ``$`` and its checksum
    generate_nmea_sentence - Generate valid GGA/RMC/GLL/GSA sentences
    generate_track - Generate a straight synthetic track
    write_json_track / write_csv_track - Write replay track files
"""

from .generators import (
    calculate_nmea_checksum,
    generate_nmea_sentence,
    generate_track,
    nmea,
    write_csv_track,
    write_json_track,
)

__all__ = [
    "calculate_nmea_checksum",
    "nmea",
    "generate_nmea_sentence",
    "generate_track",
    "write_json_track",
    "write_csv_track",
]
