"""Domain models for treatments, effect vectors and vitals."""
