"""
Package entry point.

Allows running the application via:

    python -m seminar

This simply forwards execution to seminar.cli.main().
"""

from seminar.cli import main

if __name__ == "__main__":
    main()
