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
Registry of the container runtimes a job can be run with.
"""
from typing import Callable, Dict, List

from ..MODELS.settings import RuntimeOptions, Settings
from .docker_client import DockerClient
from .runtime import ContainerRuntime

RuntimeFactory = Callable[[RuntimeOptions, Settings], ContainerRuntime]


class RuntimeRegistry:
    """
    Maps runtime names to factories. Built explicitly at process start and
    handed to whatever needs to create a runtime.
    """

    def __init__(self):
        self._factories: Dict[str, RuntimeFactory] = {}

    def register(self, name: str, factory: RuntimeFactory) -> None:
        """
        Registers a factory, replacing any previous one of the same name.

        Args:
            name: Runtime name, e.g. 'docker'.
            factory: Called with the job's options and the process settings.
        """
        self._factories[name] = factory

    def names(self) -> List[str]:
        return sorted(self._factories)

    def create(self, name: str, options: RuntimeOptions, settings: Settings) -> ContainerRuntime:
        """
        Creates a runtime client.

        Raises:
            KeyError: If no runtime of that name is registered.
        """
        if name not in self._factories:
            raise KeyError(f"Unknown container runtime '{name}'. Known: {', '.join(self.names())}")
        return self._factories[name](options, settings)


def _cli_factory(default_binary: str) -> RuntimeFactory:
    def factory(options: RuntimeOptions, settings: Settings) -> ContainerRuntime:
        return DockerClient(
            binary=settings.docker_binary or default_binary,
            options=options,
            pull_attempts=settings.pull_attempts,
        )
    return factory


def default_registry() -> RuntimeRegistry:
    """
    A registry knowing the docker and podman command line clients.
    """
    registry = RuntimeRegistry()
    registry.register("docker", _cli_factory("docker"))
    registry.register("podman", _cli_factory("podman"))
    return registry
