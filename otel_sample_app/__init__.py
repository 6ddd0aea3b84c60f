"""
Sample app for validating OpenTelemetry instrumentation.

Every endpoint performs one trivial outbound call (AWS SDK, HTTP, sibling
sample app, database) and emits traces plus synthetic and request-based
metrics while doing so.
"""

__version__ = "0.1.0"
