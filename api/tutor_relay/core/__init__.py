"""Core configuration, exceptions and request security."""
