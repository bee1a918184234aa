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
Lifecycle management for the single container backing an execution context.
"""
import logging
import shlex
from typing import Optional

from ..errors import TeardownError
from ..MODELS.container_handle import ContainerState
from ..MODELS.execution_context import ExecutionContext
from ..MODELS.job_spec import ContainerSpec
from ..MODELS.settings import Settings
from ..REGISTRY.runtime import ContainerRuntime
from ..RUNNERS.launcher import Launcher
from ..RUNNERS.user_identity import resolve_user_identity
from .environment_manager import EnvironmentManager
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)


class ContainerManager:
    """
    Acquires, enables and releases the build container of one context.
    """
    def __init__(self,
                 context: ExecutionContext,
                 runtime: ContainerRuntime,
                 host_launcher: Launcher,
                 settings: Optional[Settings] = None):
        """
        Initializes the manager.

        :param context: Context owning the container handle.
        :param runtime: Runtime that runs and stops containers.
        :param host_launcher: Undecorated launcher, used to ask the worker who runs the build.
        :param settings: Mount locations and the keep-alive command.
        """
        self.context = context
        self.runtime = runtime
        self.host_launcher = host_launcher
        self.settings = settings or Settings()
        self.environment_manager = EnvironmentManager()
        self.volume_manager = VolumeManager(self.settings)

    @property
    def handle(self):
        return self.context.handle

    def container_command(self, spec: ContainerSpec):
        """
        The container's main process: the declared command, or a placeholder
        that only keeps the container alive for later exec calls.
        """
        command = (spec.command or "").strip() or self.settings.keepalive_command
        return shlex.split(command)

    def ensure_container(self, spec: ContainerSpec, image_ref: str) -> str:
        """
        Starts the build container unless this context already has one.

        The user identity, mounts and start environment are fully resolved
        before the runtime is asked to start anything.

        :param spec: The job's container section.
        :param image_ref: Resolved image to run.
        :return: The container id.
        :raises ContainerStartError: If the identity cannot be resolved or the runtime fails.
        """
        handle = self.handle
        if handle.container_id:
            return handle.container_id

        handle.state = ContainerState.STARTING
        try:
            if handle.user_id is None:
                handle.user_id = resolve_user_identity(self.host_launcher, spec.group)

            handle.mounts.update(self.volume_manager.aggregate(
                self.context.workspace, self.context.build_url, spec.mounts))
            env = self.environment_manager.container_environment(
                self.context.build_env, self.context.host_env)

            container_id = self.runtime.run_detached(
                image_ref,
                self.context.workspace,
                handle.mounts,
                handle.ports,
                {},
                env,
                self.context.secret_keys,
                spec.network,
                spec.memory,
                spec.cpu,
                self.container_command(spec),
            )
        except BaseException:
            handle.state = ContainerState.UNSTARTED
            raise

        handle.container_id = container_id
        handle.image_id = image_ref
        handle.state = ContainerState.RUNNING
        logger.info("Docker container %s started to host the build", container_id)
        return container_id

    def enable(self) -> None:
        """
        Routes every later launch of the context into the container.

        :raises RuntimeError: If no container is running yet.
        """
        if not self.handle.container_id or self.handle.state != ContainerState.RUNNING:
            raise RuntimeError("Cannot enable container execution before the container is running")
        self.handle.enabled = True

    def teardown(self) -> bool:
        """
        Stops and removes the container. Safe to call any number of times;
        only the first call with a running container reaches the runtime.

        :return: True when there was nothing to do or the container was removed.
        :raises TeardownError: If the runtime failed to remove the container.
        """
        handle = self.handle
        if not handle.container_id or handle.is_torn_down:
            return True

        handle.enabled = False
        try:
            stopped = self.runtime.stop(handle.container_id)
        finally:
            handle.state = ContainerState.TORN_DOWN

        if not stopped:
            raise TeardownError("failed to stop and remove container", target=handle.container_id)
        logger.info("Docker container %s removed", handle.container_id)
        return True
