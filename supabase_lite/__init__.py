"""Supabase Lite: a small MCP server for Supabase data, storage and users."""

__version__ = "1.0.0"
