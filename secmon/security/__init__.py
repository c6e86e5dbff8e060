"""Runtime security monitoring engine."""
