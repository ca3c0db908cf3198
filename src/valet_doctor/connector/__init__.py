"""Connector package - Local command execution."""
