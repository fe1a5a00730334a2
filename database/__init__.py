"""
SQLite persistence for graphs, runs, webhook configs/events and entities.
"""
