"""Configuration, logging and exception hierarchy shared by all services."""
