"""Terminal user interface for the Code Radio client."""
