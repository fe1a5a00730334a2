"""
Services package for the workflow execution engine.
"""
