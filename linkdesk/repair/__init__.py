"""Data-repair jobs run from the admin API and the CLI."""
