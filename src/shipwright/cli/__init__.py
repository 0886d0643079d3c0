"""shipwright command line (typer + rich)."""
