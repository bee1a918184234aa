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
The scope of one pipeline run, passed by reference to every collaborator.
"""
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from .container_handle import ContainerHandle

# Adds or overrides keys of the environment it is given.
EnvironmentContributor = Callable[[Dict[str, str]], None]


@dataclass
class ExecutionContext:
    """
    State of one execution context.

    Attributes:
        job_name: Name of the job being run.
        workspace: Host directory the job works in; also the container workdir.
        build_url: Relative URL of the build, e.g. ``job/demo/7/``.
        build_env: Build variables exported to the steps.
        host_env: Snapshot of the host environment of the worker.
        secret_keys: Build variables whose values must never be logged.
        environment_contributors: Context-level environment overlays.
        handle: The build container, owned by this context only.
    """

    job_name: str
    workspace: str
    build_url: Optional[str] = None
    build_env: Dict[str, str] = field(default_factory=dict)
    host_env: Dict[str, str] = field(default_factory=lambda: dict(os.environ))
    secret_keys: Set[str] = field(default_factory=set)
    environment_contributors: List[EnvironmentContributor] = field(default_factory=list)
    handle: ContainerHandle = field(default_factory=ContainerHandle)

    def add_environment(self, contributor: EnvironmentContributor) -> None:
        self.environment_contributors.append(contributor)

    def environment_overlay(self, base: Dict[str, str]) -> Dict[str, str]:
        """
        Applies every contributor, in registration order, to a copy of ``base``.
        """
        env = dict(base)
        for contributor in self.environment_contributors:
            contributor(env)
        return env

    def expansion_env(self) -> Dict[str, str]:
        """
        Variables available to ``$VAR`` references in the job's container section.
        """
        env = dict(self.host_env)
        env.update(self.build_env)
        return env
