"""
Shared utilities: configuration, errors, logging and progress monitoring.
"""
