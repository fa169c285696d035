"""Application layer: sync sources, services and workers."""
