"""Command line interface for tileflip."""
