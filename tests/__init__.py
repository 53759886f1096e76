"""
Test suite for the fund fee engine

Contains:
- tests/unit/          : Unit tests for individual modules, plus end-to-end
                         dispatches through the Fee Manager
"""
