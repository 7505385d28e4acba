"""Best-ball match domain services: aggregation, lifecycle and scoring.

This package holds the match semantics imported by HTTP routes and socket
handlers, keeping transport concerns separated from scoring rules.
"""
