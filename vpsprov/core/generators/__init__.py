"""Artifact generators — files that steps write onto the host."""
