"""Output formatting and input validation helpers for the CLI and facade."""
