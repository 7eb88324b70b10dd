"""Main entry point for the site index CLI.

Usage:
    python -m siteindex --help
    siteindex --help  # If installed via pip/uv
"""

from siteindex.cli import main

if __name__ == "__main__":
    main()
