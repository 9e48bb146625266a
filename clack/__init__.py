"""Clack: a small chat client/server with typed messages and classical text ciphers."""
__version__ = "0.1.0"
