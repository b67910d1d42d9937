"""CLI entry point for fieldsync.cli module.

Enables execution via: python -m fieldsync.cli
"""

from fieldsync.cli.sync_uploads import main

if __name__ == "__main__":
    main()
