"""
phase-guard test suite.

Shared requirement fixtures, score/plan factories and the MCP tool capture
helper live in helpers.py.
"""
