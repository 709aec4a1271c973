"""Pydantic models for deployment configuration and run state."""
