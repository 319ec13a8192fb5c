# =============================================================================
# File: tests/fakes/__init__.py
# Description: Fake port implementations for unit testing
# =============================================================================
