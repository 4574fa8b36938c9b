"""Shared building blocks: settings, exceptions and database base classes."""
