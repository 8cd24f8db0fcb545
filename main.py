"""Main entry point for adoreviewbuddy."""

from adoreviewbuddy.cli import app


def main() -> None:
    """Run the adoreviewbuddy CLI."""
    app()


if __name__ == "__main__":
    main()
