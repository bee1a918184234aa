# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Command Line Interface for dockstep.
"""
import logging
import os
from typing import Dict, Tuple

import click
from pydantic import ValidationError

from ..BUILDERS.image_resolver import ImageResolver
from ..errors import CancellationSignal, DockstepError
from ..MANAGERS.container_session import ContainerSession, container_spec_of
from ..MODELS.execution_context import ExecutionContext
from ..MODELS.settings import RuntimeOptions, Settings
from ..PARSERS.blueprint_parser import BlueprintParser
from ..REGISTRY.runtime_registry import default_registry
from ..RUNNERS.launcher import HostLauncher
from ..RUNNERS.shell_step import ShellStep

EXIT_STEP_FAILED = 1
EXIT_SETUP_FAILED = 2
EXIT_CANCELLED = 130


def _parse_vars(values: Tuple[str, ...]) -> Dict[str, str]:
    """
    Turns repeated KEY=VALUE options into a dictionary.
    """
    env = {}
    for item in values:
        if '=' not in item:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--var")
        key, value = item.split('=', 1)
        env[key] = value
    return env


@click.group()
@click.option('--env-file', default='.env', help='dotenv file with DOCKSTEP_* settings')
@click.option('--verbose', '-v', is_flag=True, help='Log every runtime call')
@click.pass_context
def cli(ctx, env_file, verbose):
    """
    dockstep - run blueprint jobs inside a build container.

    Every command the job launches runs in a container started from the
    job's image or Dockerfile, as the user invoking dockstep.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")
    if 'settings' not in ctx.obj:
        try:
            ctx.obj['settings'] = Settings.from_env(env_file)
        except ValidationError as e:
            click.echo(f"Error: invalid DOCKSTEP_* settings: {e}", err=True)
            ctx.exit(EXIT_SETUP_FAILED)
    ctx.obj.setdefault('registry', default_registry())


def _load_job(settings: Settings, workspace: str, job: str):
    job_spec = BlueprintParser(settings.blueprint_file).load_job(workspace, job)
    return job_spec, container_spec_of(job_spec)


def _create_runtime(ctx, name, container):
    settings = ctx.obj['settings']
    try:
        return ctx.obj['registry'].create(name or settings.runtime,
                                          RuntimeOptions.from_container_spec(container), settings)
    except KeyError as e:
        click.echo(f"Error: {e.args[0]}", err=True)
        ctx.exit(EXIT_SETUP_FAILED)


@cli.command()
@click.argument('job')
@click.option('--workspace', '-w', default='.', help='Workspace holding the blueprint file')
@click.option('--build-url', default=None, help='Relative build URL, e.g. job/demo/7/')
@click.option('--var', 'variables', multiple=True, help='Build variable KEY=VALUE')
@click.option('--secret', 'secrets', multiple=True, help='Build variable never to be logged')
@click.option('--runtime', default=None, help='Container runtime to use')
@click.pass_context
def run(ctx, job, workspace, build_url, variables, secrets, runtime):
    """Run the script of JOB inside its build container."""
    settings = ctx.obj['settings']
    workspace = os.path.abspath(workspace)
    build_env = _parse_vars(variables)

    try:
        job_spec, container = _load_job(settings, workspace, job)
    except DockstepError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_SETUP_FAILED)

    build_env.setdefault('JOB_NAME', job)
    build_env.setdefault('WORKSPACE', workspace)
    if build_url:
        build_env.setdefault('BUILD_URL', build_url)

    context = ExecutionContext(
        job_name=job,
        workspace=workspace,
        build_url=build_url,
        build_env=build_env,
        secret_keys=set(secrets),
    )
    runtime_client = _create_runtime(ctx, runtime, container)
    host_launcher = ctx.obj.get('host_launcher') or HostLauncher()
    step = ShellStep(job_spec, settings.shell)

    try:
        with ContainerSession(context, job_spec, runtime_client, host_launcher, settings) as launcher:
            succeeded = step.perform(context, launcher, stdout=click.get_binary_stream('stdout'))
    except DockstepError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_SETUP_FAILED)
    except CancellationSignal:
        click.echo("Aborted.", err=True)
        ctx.exit(EXIT_CANCELLED)

    if not succeeded:
        click.echo(f"Job {job} failed.", err=True)
        ctx.exit(EXIT_STEP_FAILED)
    click.echo(f"Job {job} succeeded.")


@cli.command()
@click.argument('job')
@click.option('--workspace', '-w', default='.', help='Workspace holding the blueprint file')
@click.option('--runtime', default=None, help='Container runtime to use')
@click.pass_context
def image(ctx, job, workspace, runtime):
    """Pull or build the image of JOB and print its reference."""
    settings = ctx.obj['settings']
    workspace = os.path.abspath(workspace)
    try:
        _, container = _load_job(settings, workspace, job)
        runtime_client = _create_runtime(ctx, runtime, container)
        context = ExecutionContext(job_name=job, workspace=workspace)
        ref = ImageResolver(runtime_client, workspace).resolve(container, context.expansion_env())
    except DockstepError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(EXIT_SETUP_FAILED)
    except CancellationSignal:
        click.echo("Aborted.", err=True)
        ctx.exit(EXIT_CANCELLED)
    click.echo(ref)


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
