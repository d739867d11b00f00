#!/usr/bin/env python3

import click

from feedpush.commands.publish import publish_handler
from feedpush.commands.sources import sources_handler
from feedpush.commands.config import config_cmd


@click.group()
@click.version_option(package_name='feedpush')
def cli():
    """feedpush - Publish build packages to NuGet feeds.

    Pushes only what each feed is missing, skips feeds whose secret is not
    available, and promotes packages into Azure DevOps feed views.
    """
    pass


cli.add_command(publish_handler, name='publish')
cli.add_command(sources_handler, name='sources')
cli.add_command(config_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
