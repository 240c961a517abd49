"""Module defines all available cli tools."""
from __future__ import annotations

import click

from protbp.cli.inference import infer


@click.group(context_settings={"show_default": True})
def main() -> None:
    """Entry point for protbp."""
    pass


main.add_command(infer)


if __name__ == "__main__":
    main()
