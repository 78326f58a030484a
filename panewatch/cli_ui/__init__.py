"""Terminal rendering for the panewatch CLI."""
