"""
Configuration loading: credentials and pricing overrides.
"""
