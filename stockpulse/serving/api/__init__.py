"""
HTTP API for report runs.
"""
