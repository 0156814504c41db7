"""
HTTP API for the query analyser
"""
