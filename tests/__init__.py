"""
artindex test suite.

- Unit tests for individual components
- Integration tests for rescan and search flows
"""
