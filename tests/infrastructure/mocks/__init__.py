"""Test doubles for the tracking boundaries."""
