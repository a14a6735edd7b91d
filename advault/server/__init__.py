"""HTTP boundary for the asset library."""
