"""Core business logic: rate limiting, AI clients, consensus, scoring, risk and decisions.

This module is framework-agnostic. It has no dependency on MCP or on the
SQLite counter store; both are wired in from the server package.
"""
