"""eventbell command-line interface."""
