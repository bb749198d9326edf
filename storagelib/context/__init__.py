"""
Run context: settings, environment, logging and tracing.
"""
