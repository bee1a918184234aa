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
Scoped acquisition of the build container for one execution context.
"""
import logging
import shlex
from typing import Optional

from ..BUILDERS.image_resolver import ImageResolver
from ..errors import ConfigurationError, TeardownError
from ..MODELS.execution_context import ExecutionContext
from ..MODELS.job_spec import ContainerSpec, JobSpec
from ..MODELS.settings import Settings
from ..REGISTRY.runtime import ContainerRuntime
from ..RUNNERS.container_launcher import ContainerLauncher
from ..RUNNERS.launcher import Launcher
from .container_manager import ContainerManager

logger = logging.getLogger(__name__)


def container_spec_of(job: JobSpec) -> ContainerSpec:
    """
    Returns the container section of a job after checking it can be used.

    :param job: The job.
    :return: Its container section.
    :raises ConfigurationError: If the section is missing, names neither image nor Dockerfile,
        or has a command that cannot be split into arguments.
    """
    if job.container is None:
        raise ConfigurationError("job is not configured to run inside a container", target=job.name)
    if not job.container.has_image_source():
        raise ConfigurationError("job specifies neither image nor buildDockerfilePath", target=job.name)
    if job.container.command:
        try:
            shlex.split(job.container.command)
        except ValueError as e:
            raise ConfigurationError(f"invalid container command: {e}", target=job.name) from e
    return job.container


class ContainerSession:
    """
    Runs the steps of a context in a container.

    The decorated launcher exists from construction on and passes launches
    through until ``setup`` has started the container. Used as a context
    manager, the container is torn down exactly once however the block exits.
    """
    def __init__(self,
                 context: ExecutionContext,
                 job: JobSpec,
                 runtime: ContainerRuntime,
                 host_launcher: Launcher,
                 settings: Optional[Settings] = None):
        """
        Initializes the session.

        :param context: The execution context.
        :param job: Job whose container section describes the container.
        :param runtime: Container runtime client.
        :param host_launcher: Launcher of the worker host, to be decorated.
        :param settings: Process settings.
        """
        self.context = context
        self.job = job
        self.runtime = runtime
        self.settings = settings or Settings()
        self.manager = ContainerManager(context, runtime, host_launcher, self.settings)
        self.resolver = ImageResolver(runtime, context.workspace)
        self.launcher = ContainerLauncher(host_launcher, context, runtime, self.manager.environment_manager)

    def setup(self) -> ContainerLauncher:
        """
        Resolves the image, starts the container and enables the decorator.

        :return: The decorated launcher.
        """
        spec = container_spec_of(self.job)
        handle = self.context.handle
        if handle.container_id is None:
            if handle.image_id is None:
                handle.image_id = self.resolver.resolve(spec, self.context.expansion_env())
            self.manager.ensure_container(spec, handle.image_id)
        self.manager.enable()
        return self.launcher

    def teardown(self) -> bool:
        """
        Removes the container. A failure is logged and reported as False, it
        never replaces the outcome of the steps.
        """
        try:
            return self.manager.teardown()
        except TeardownError as e:
            logger.error("%s", e)
            return False

    def __enter__(self) -> ContainerLauncher:
        try:
            return self.setup()
        except BaseException:
            self.teardown()
            raise

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.teardown()
        return False
