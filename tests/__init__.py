"""
vpnauth Test Suite

Test organization:
- unit/: Unit tests for individual modules
- property/: Property-based tests using Hypothesis
"""
