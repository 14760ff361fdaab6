"""API module for MLTrackr.

Validates inputs, resolves the caller, delegates to the tracking layer,
and shapes responses for the dashboard.
"""
