"""
Core configuration, logging and error types for the workflow execution engine.
"""
