"""
Serving layer: report cache and HTTP API.
"""
