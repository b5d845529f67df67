"""
Waypoint core utilities: exceptions, logging, validation, paths and settings.
"""
