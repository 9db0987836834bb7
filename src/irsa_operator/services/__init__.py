"""Cloud service capability clients."""
