"""
Publish command for feedpush.

Pushes built packages to the feeds declared in configuration, skipping
packages a feed already has and feeds whose secret is not available.
"""

import json
import sys
from typing import Optional, Tuple

import click

from ..config import load_config, configure_logging
from ..domain.artifact import parse_artifact_spec
from ..cli_utils import standard_command
from ..exit_codes import InvalidArgumentError, PARTIAL_SUCCESS
from ..render import render_publish_summary
from ..services.feed_service import (
    FeedPublisher,
    create_feed_from_config,
    create_local_feed,
    feed_entry_names,
)
from ..services.session import PublishSession


@click.command('publish')
@click.option('-o', '--output-dir', required=True, type=click.Path(exists=True, file_okay=False),
              help='Directory holding the built package files')
@click.option('-a', '--artifact', 'artifacts', multiple=True, required=True,
              help='Package to publish as NAME@VERSION (repeatable)')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False),
              help='Configuration file (default: FEEDPUSH_CONFIG or ~/.feedpush/config.*)')
@click.option('-f', '--feed', 'feed_names', multiple=True,
              help='Only publish to feeds with this name (repeatable)')
@click.option('--local', 'local_paths', multiple=True, type=click.Path(file_okay=False),
              help='Additional local directory feed (repeatable)')
@click.option('--interactive/--no-interactive', default=None,
              help='Prompt for secrets missing from the environment')
@click.option('--parallel', type=int, default=None, help='Number of feeds processed at once')
@click.option('--dry-run', is_flag=True, help='Only show which packages each feed needs')
@click.option('--keep-going', is_flag=True, help='Report a failed feed and continue with the others')
@click.option('--pretty', is_flag=True, help='Display results as a table')
@click.option('-v', '--verbose', is_flag=True, help='Debug logging')
@standard_command
def publish_handler(
    output_dir: str,
    artifacts: Tuple[str, ...],
    config_path: Optional[str],
    feed_names: Tuple[str, ...],
    local_paths: Tuple[str, ...],
    interactive: Optional[bool],
    parallel: Optional[int],
    dry_run: bool,
    keep_going: bool,
    pretty: bool,
    verbose: bool,
):
    """
    Publish packages to the configured feeds.

    Package files are looked up as OUTPUT_DIR/<name>.<version>.nupkg.
    Packages already on a feed are not pushed again, so a failed run
    can simply be re-run.

    \b
    Examples:
        # Publish two packages to every configured feed
        feedpush publish -o ./releases -a MyLib@1.2.0 -a MyLib.Tools@1.2.0
        # See what would be pushed
        feedpush publish -o ./releases -a MyLib@1.3.0-ci.4 --dry-run --pretty
        # Push to a local directory only
        feedpush publish -o ./releases -a MyLib@1.2.0 --local ./feed
    """
    config = load_config(config_path)
    configure_logging(config, verbose=verbose)

    candidates = {}
    for spec in artifacts:
        artifact = parse_artifact_spec(spec)
        candidates[artifact.key] = artifact

    with PublishSession.from_config(config, interactive=interactive) as session:
        entries = config.get('feeds', []) or []
        if feed_names:
            # Unselected entries are never created
            entries = [e for e in entries if feed_entry_names(session, e) & set(feed_names)]
        feeds = [create_feed_from_config(session, entry) for entry in entries]
        local_feeds = [create_local_feed(session, path) for path in local_paths]
        if feed_names:
            local_feeds = [f for f in local_feeds if f.name in feed_names]
        feeds.extend(local_feeds)
        if not feeds:
            raise InvalidArgumentError("No feeds to publish to. Declare 'feeds' in configuration or use --local.")

        publisher = FeedPublisher(session)
        summary = publisher.run(
            feeds,
            candidates,
            output_dir,
            parallel=parallel,
            dry_run=dry_run,
            keep_going=keep_going,
        )

    if pretty:
        render_publish_summary(summary)
    else:
        for detail in summary.details:
            click.echo(json.dumps(detail.to_dict()))
        click.echo(json.dumps(summary.to_dict()))

    if not summary.success:
        sys.exit(PARTIAL_SUCCESS)
