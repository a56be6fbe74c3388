"""Diagnostic and maintenance commands for the ChatFlow API."""
