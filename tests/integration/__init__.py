"""
End-to-end tests for the load harness.

These tests run real virtual users over HTTP against a Flask stub of the
auth API served on an ephemeral local port, and demonstrate:
- Full setup -> load -> teardown runs
- Threshold verdicts on real traffic
- Failure injection through stub knobs
"""
