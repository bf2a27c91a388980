"""Caption Contest API."""
