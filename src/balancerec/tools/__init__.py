"""Development helpers that stay out of the hot path unless switched on."""
