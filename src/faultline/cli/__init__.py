"""faultline command-line interface."""
