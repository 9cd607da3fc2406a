"""Core runtime pieces: event bus and expansion dispatch."""
