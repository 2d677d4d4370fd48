import functools
from typing import Any, Callable, Optional

import click

from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import versions
from trustee_operator._core.actions import loggers
from trustee_operator._core.engines import probing
from trustee_operator._core.reactor import running


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def validate_liveness(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[str]:
    if value:
        try:
            probing.parse_endpoint(value)
        except ValueError as e:
            raise click.BadParameter(str(e))
    return value


@click.version_option(version=versions.version or 'unknown', prog_name='trustee-operator')
@click.group(name='trustee-operator', context_settings=dict(
    auto_envvar_prefix='TRUSTEE_OPERATOR',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('-n', '--namespace', type=str, default=None,
              help="The operating namespace (default: $POD_NAMESPACE or kbs-operator-system).")
@click.option('-L', '--liveness', 'liveness_endpoint', type=str, callback=validate_liveness,
              help="Serve the liveness probe, e.g. http://0.0.0.0:8080/healthz.")
@click.option('--worker-limit', type=click.IntRange(min=1), default=None,
              help="How many records can be reconciled at the same time.")
def run(
        namespace: Optional[str],
        liveness_endpoint: Optional[str],
        worker_limit: Optional[int],
) -> None:
    """ Start the operator process and reconcile the KbsConfig records. """
    settings = configuration.OperatorSettings()
    if worker_limit is not None:
        settings.queueing.worker_limit = worker_limit
    return running.run(
        settings=settings,
        namespace=namespace,
        liveness_endpoint=liveness_endpoint,
    )
