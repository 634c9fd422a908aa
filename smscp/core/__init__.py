"""Core infrastructure: config, logging, exceptions, security."""
