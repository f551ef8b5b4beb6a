"""Persistence for question records and user profiles."""
