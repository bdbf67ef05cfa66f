"""
Test suite for the loadgate load harness.

This package contains:
- unit/: metrics, thresholds, configuration, client, scheduler and
  scenario tests against in-memory fakes
- integration/: end-to-end runs against a live Flask stub API
"""
