"""Core configuration, errors and authorization."""
