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
Launcher decorator that re-routes process launches into the build container.
"""
import logging
from typing import Dict, Optional

from ..MANAGERS.environment_manager import EnvironmentManager
from ..MODELS.command_spec import CommandSpec
from ..MODELS.execution_context import ExecutionContext
from ..REGISTRY.runtime import ContainerRuntime
from .launcher import Launcher, Proc

logger = logging.getLogger(__name__)


class ContainerLauncher:
    """
    Wraps the launcher of an execution context.

    Until the context's container is enabled every launch goes to the wrapped
    launcher untouched, which covers steps such as source checkout that run
    before the container exists. Afterwards each launch is rewritten into an
    exec in the container and dispatched through the wrapped launcher, so
    the caller keeps its stream sinks and gets the usual Proc back.
    """
    def __init__(self,
                 launcher: Launcher,
                 context: ExecutionContext,
                 runtime: ContainerRuntime,
                 environment_manager: Optional[EnvironmentManager] = None):
        """
        Args:
            launcher (Launcher): The launcher being decorated.
            context (ExecutionContext): Context owning the container handle.
            runtime (ContainerRuntime): Runtime that knows how to exec into the container.
            environment_manager (Optional[EnvironmentManager]): Reconciles environment layers.
        """
        self.launcher = launcher
        self.context = context
        self.runtime = runtime
        self.environment_manager = environment_manager or EnvironmentManager()

    def base_environment(self) -> Dict[str, str]:
        """
        Environment of the running container, read once per context.

        Raises:
            ContainerEnvironmentError: If the runtime cannot read it; nothing is cached then.
        """
        handle = self.context.handle
        if handle.base_env is None:
            handle.base_env = dict(self.runtime.get_env(handle.container_id))
        return handle.base_env

    def container_environment(self, spec: CommandSpec) -> Dict[str, str]:
        """
        The environment one containerized launch runs with: the container's
        own variables, overlaid by the context contributors and the step.
        """
        base = self.base_environment()
        overlay = self.context.environment_overlay(base)
        overlay.update(spec.env)
        return self.environment_manager.reconcile(base, overlay)

    def launch(self, spec: CommandSpec) -> Proc:
        """
        Launches a process, inside the container once it is enabled.

        Args:
            spec (CommandSpec): What the caller wants to run.

        Returns:
            Proc: The process started by the wrapped launcher.
        """
        handle = self.context.handle
        if not handle.enabled:
            return self.launcher.launch(spec)

        env = self.container_environment(spec)
        exec_spec = self.runtime.exec_command(
            handle.container_id, handle.user_id, spec, env, self.context.secret_keys)
        logger.debug("running in container %s: %s", handle.container_id, spec.masked_cmdline())
        return self.launcher.launch(exec_spec)
