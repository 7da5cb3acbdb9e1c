"""
Service layer: identity matching, source fetchers and the aggregator.
"""
