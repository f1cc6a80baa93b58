"""Common Lambda utilities and base classes.

Provides the base handler class together with its logging and metrics mixins.
"""
