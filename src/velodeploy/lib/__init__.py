"""Shared utilities: errors, logging and host facts."""
