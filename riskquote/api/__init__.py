"""HTTP consumption surface."""
