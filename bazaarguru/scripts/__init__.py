"""Command line entry points for operational tasks."""
