"""Command-line interface for imagepipe."""
