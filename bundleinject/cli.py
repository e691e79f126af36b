import asyncio
import dataclasses
import functools
from collections.abc import Callable, Collection
from typing import Any

import click

from bundleinject._cogs.clients import auth, patching
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.structs import references
from bundleinject._core.actions import loggers
from bundleinject._core.intents import sources
from bundleinject._core.reactor import running


@dataclasses.dataclass()
class CLIControls:
    """ Controls for embedding & testing, which are impossible to pass via CLI. """
    stop_flag: asyncio.Event | None = None
    settings: configuration.OperatorSettings | None = None
    merger: patching.Merger | None = None
    context: auth.APIContext | None = None


class ConfigMapKeyParamType(click.ParamType):
    """ A reference to a key in a ConfigMap: ``NAMESPACE/NAME:KEY``. """
    name = 'configmap-key'

    def convert(self, value: Any, param: Any, ctx: Any) -> tuple[references.ObjectRef, str]:
        if isinstance(value, tuple):
            return value
        text, sep, key = str(value).rpartition(':')
        if not sep or not key:
            self.fail(f"Expected NAMESPACE/NAME:KEY, got {value!r}.", param, ctx)
        try:
            ref = references.parse_ref(text)
        except ValueError as e:
            self.fail(str(e), param, ctx)
        return ref, key


def _parse_log_format(ctx: click.Context, param: click.Parameter, value: str) -> loggers.LogFormat:
    return loggers.LogFormat[value.upper()]


_LOGGING_OPTIONS = [
    click.option('-v', '--verbose', is_flag=True, help="Log the debug messages too."),
    click.option('-d', '--debug', is_flag=True, help="Like --verbose, plus asyncio's messages."),
    click.option('-q', '--quiet', is_flag=True, help="Log only the warnings and errors."),
    click.option('--log-format', default='full', callback=_parse_log_format,
                 type=click.Choice([fmt.name.lower() for fmt in loggers.LogFormat],
                                   case_sensitive=False)),
    click.option('--log-prefix/--no-log-prefix', default=None,
                 help="Prefix the objects' messages with namespace/name."),
    click.option('--log-refkey', type=str, help="The key of the object's reference in JSON logs."),
]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ Add the logging options to a command, and configure the logging before it runs. """
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        loggers.configure(
            debug=kwargs.pop('debug'),
            verbose=kwargs.pop('verbose'),
            quiet=kwargs.pop('quiet'),
            log_format=kwargs.pop('log_format'),
            log_prefix=kwargs.pop('log_prefix'),
            log_refkey=kwargs.pop('log_refkey'),
        )
        return fn(*args, **kwargs)

    for option in reversed(_LOGGING_OPTIONS):
        wrapper = option(wrapper)
    return wrapper


@click.version_option(prog_name='bundleinject')
@click.group(name='bundleinject', context_settings=dict(
    auto_envvar_prefix='BUNDLEINJECT',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('-A', '--all-namespaces', 'clusterwide', is_flag=True,
              envvar='BUNDLEINJECT_RUN_ALL_NAMESPACES')
@click.option('-n', '--namespace', 'namespaces', multiple=True,
              envvar='BUNDLEINJECT_RUN_NAMESPACE')
@click.option('--bundle-file', type=click.Path(dir_okay=False))
@click.option('--bundle-configmap', type=ConfigMapKeyParamType())
@click.option('--field-manager', type=str)
@click.option('--reconcile-timeout', type=float)
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        __controls: CLIControls,
        namespaces: Collection[str],
        clusterwide: bool,
        bundle_file: str | None,
        bundle_configmap: tuple[references.ObjectRef, str] | None,
        field_manager: str | None,
        reconcile_timeout: float | None,
) -> None:
    """ Start an operator process and inject the bundle into the labelled ConfigMaps. """
    if namespaces and clusterwide:
        raise click.UsageError("Either --namespace or --all-namespaces can be used, not both.")
    if not namespaces and not clusterwide:
        raise click.UsageError("Either --namespace or --all-namespaces is required.")
    if bundle_file and bundle_configmap:
        raise click.UsageError("Either --bundle-file or --bundle-configmap can be used, not both.")
    if not bundle_file and not bundle_configmap:
        raise click.UsageError("Either --bundle-file or --bundle-configmap is required.")

    settings = __controls.settings if __controls.settings is not None else configuration.OperatorSettings()
    if field_manager is not None:
        settings.injection.field_manager = field_manager
    if reconcile_timeout is not None:
        settings.reconciling.timeout = reconcile_timeout

    source: sources.BundleSource
    if bundle_configmap is not None:
        ref, key = bundle_configmap
        source = sources.ConfigMapSource(ref, key, settings=settings)
    else:
        source = sources.FileSource(bundle_file)

    return running.run(
        source=source,
        settings=settings,
        namespaces=namespaces,
        clusterwide=clusterwide,
        stop_flag=__controls.stop_flag,
        merger=__controls.merger,
        context=__controls.context,
    )
