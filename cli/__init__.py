"""Meter front ends: the argparse CLI and the Textual TUI."""
