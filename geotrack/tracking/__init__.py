"""Continuous location tracking.

This package provides:
- tracking_core: Session state machine, movement filter, path store,
  background execution coordination, and position sources
- api: HTTP routes exposing the session
- config: Typed tracker configuration
- main_tracking: Command-line entry point
"""
