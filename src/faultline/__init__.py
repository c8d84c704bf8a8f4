"""faultline - an instrumented HTTP service for fault injection experiments."""

__version__ = "1.0.0"
