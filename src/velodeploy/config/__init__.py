"""Configuration loading, defaults and validation helpers."""
