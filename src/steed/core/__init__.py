"""Command queue, page lifecycle, waits and frames."""
