"""Supporting services: health-tracking aggregation, resilience, scheduling."""
