"""Kanjou CLI subcommands."""
