"""Main entry point when executing tripmap as a package.

This allows running the package using python -m tripmap.
"""

from tripmap.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
