"""Pydantic models for question records, profiles and channel messages."""
