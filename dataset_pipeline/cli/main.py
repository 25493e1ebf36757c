"""CLI interface for Dataset Pipeline."""

import click

from .pipeline import pipeline


@click.group()
def main():
    """Dataset Pipeline CLI."""
    pass


main.add_command(pipeline)


if __name__ == "__main__":
    main()
