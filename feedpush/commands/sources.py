import json

import click

from ..cli_utils import standard_command
from ..config import load_config
from ..render import render_sources_table
from ..services.feed_service import create_feed_from_config
from ..services.session import PublishSession


@click.command('sources')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False),
              help='Configuration file')
@click.option('--with-feeds', is_flag=True, help='Also register the configured feeds first')
@click.option('--pretty', is_flag=True, help='Display as a table')
@standard_command
def sources_handler(config_path, with_feeds, pretty):
    """List package sources in lookup order.

    Sources come from configuration ('sources' and 'nuget_config').
    With --with-feeds, sources created for configured feeds are listed
    too; they are prefixed with "FP-".
    """
    config = load_config(config_path)
    with PublishSession.from_config(config, interactive=False) as session:
        if with_feeds:
            for entry in config.get('feeds', []) or []:
                create_feed_from_config(session, entry)
        sources = session.registry.list_all()

    if pretty:
        render_sources_table(sources)
    else:
        for source in sources:
            click.echo(json.dumps(source.to_dict()))
