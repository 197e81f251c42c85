"""Engine utilities."""
