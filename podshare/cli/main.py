import click
import logging

from podshare.utils.logging import setup_logging

from .share import share, revoke
from .policy import policy_cli
from .log import log_cli


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enables verbose mode.')
@click.option('--quiet', '-q', is_flag=True, help='Enables quiet mode.')
@click.pass_context
def app(ctx, verbose, quiet):
    """
    podshare: access sharing for Solid pods.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet

    if verbose:
        setup_logging(level="DEBUG")
    elif quiet:
        setup_logging(level="ERROR")
    else:
        setup_logging()
    logging.getLogger("httpx").setLevel(logging.WARNING)

# Add subcommands
app.add_command(share)
app.add_command(revoke)
app.add_command(policy_cli, name='policy')
app.add_command(log_cli, name='log')

if __name__ == '__main__':
    app()
