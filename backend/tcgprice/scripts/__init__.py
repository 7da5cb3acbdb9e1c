"""
Command-line scripts.
"""
