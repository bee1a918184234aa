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
Runtime record of the container that hosts an execution context.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set

from .job_spec import Mount


class ContainerState(str, Enum):
    """
    Lifecycle of a build container. TORN_DOWN is terminal.
    """
    UNSTARTED = "unstarted"
    STARTING = "starting"
    RUNNING = "running"
    TORN_DOWN = "torn-down"


@dataclass
class ContainerHandle:
    """
    Identity, enablement and cached metadata of the build container.
    Owned by exactly one execution context.
    """

    container_id: Optional[str] = None
    image_id: Optional[str] = None
    enabled: bool = False
    state: ContainerState = ContainerState.UNSTARTED

    # uid:gid every exec runs as
    user_id: Optional[str] = None

    # Read from the running container on first decorated launch
    base_env: Optional[Dict[str, str]] = None

    mounts: Set[Mount] = field(default_factory=set)
    ports: Dict[int, int] = field(default_factory=dict)  # {container: host}

    def bind_mount(self, host_path: str, container_path: Optional[str] = None) -> None:
        """
        Adds a bind mount; the container path defaults to the host path.
        """
        self.mounts.add(Mount(host_path=host_path, container_path=container_path or host_path))

    @property
    def is_torn_down(self) -> bool:
        return self.state == ContainerState.TORN_DOWN
