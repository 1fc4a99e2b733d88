import click

from upswatch.utils.logging import setup_logging
from .alerts import alerts_cli, predictions_cmd
from .devices import devices_cli
from .export import export_cmd
from .monitor import health, monitor, stats


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enables verbose mode.')
@click.option('--quiet', '-q', is_flag=True, help='Enables quiet mode.')
@click.pass_context
def app(ctx, verbose, quiet):
    """
    upswatch UPS fleet monitoring CLI.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet

    if verbose:
        setup_logging(force=True, level="DEBUG")
    elif quiet:
        setup_logging(force=True, level="ERROR")
    else:
        setup_logging()


# Add subcommands
app.add_command(devices_cli, name='devices')
app.add_command(alerts_cli, name='alerts')
app.add_command(predictions_cmd, name='predictions')
app.add_command(health, name='health')
app.add_command(stats, name='stats')
app.add_command(monitor, name='monitor')
app.add_command(export_cmd, name='export')

if __name__ == '__main__':
    app()
