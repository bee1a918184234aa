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
The container runtime capability consumed by dockstep.
"""
from typing import Collection, Dict, Iterable, List, Optional, Protocol

from ..MODELS.command_spec import CommandSpec
from ..MODELS.job_spec import Mount


class ContainerRuntime(Protocol):
    """
    Operations dockstep needs from a container runtime. Every call blocks
    until the runtime answers.
    """

    def has_image(self, ref: str) -> bool: ...

    def pull_image(self, ref: str) -> bool: ...

    def build_image(self, context_dir: str, dockerfile_path: str, force_pull: bool) -> str: ...

    def run_detached(self, image: str, workdir: str, mounts: Iterable[Mount],
                     ports: Dict[int, int], links: Dict[str, str], env: Dict[str, str],
                     secret_keys: Collection[str], network: Optional[str],
                     memory: Optional[str], cpu: Optional[str], command: List[str]) -> str: ...

    def exec_command(self, container_id: str, user: str, spec: CommandSpec,
                     env: Dict[str, str], secret_keys: Collection[str] = ()) -> CommandSpec: ...

    def execute_in(self, container_id: str, user: str, spec: CommandSpec,
                   env: Dict[str, str], secret_keys: Collection[str] = ()) -> int: ...

    def get_env(self, container_id: str) -> Dict[str, str]: ...

    def stop(self, container_id: str) -> bool: ...
