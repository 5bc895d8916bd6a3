"""Shop-floor execution tracker service."""
