"""Core package: authentication, configuration and exceptions."""
