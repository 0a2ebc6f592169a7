"""
Integration tests for seamless.

These tests spawn real Python processes and signal them to validate the
launcher relay, the handoff, and complete restart cycles end to end.
"""
