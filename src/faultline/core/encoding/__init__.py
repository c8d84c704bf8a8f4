"""Wire encoders for metrics and log records."""
