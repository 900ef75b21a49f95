"""Command line front end: `python -m tracker <command>`."""
