"""Test fixtures for CES.

This package provides reusable test fixtures for the simulation core:
- core: Scenarios, sessions, time events and wired lifecycle managers
"""
