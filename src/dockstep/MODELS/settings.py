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
Process-wide configuration and the per-job runtime options.
"""
import os
from typing import Dict, List, Optional
from dotenv import dotenv_values
from pydantic import BaseModel, Field

from .job_spec import ContainerSpec, Mount

ENV_PREFIX = "DOCKSTEP_"


class RuntimeOptions(BaseModel):
    """
    Switches that change how the runtime is driven for one job.
    """
    verbose: bool = False
    privileged: bool = False
    force_pull: bool = False

    @classmethod
    def from_container_spec(cls, spec: ContainerSpec) -> "RuntimeOptions":
        return cls(verbose=spec.verbose, privileged=spec.privileged, force_pull=spec.force_pull)


def default_tool_mounts(ci_home: str) -> List[Mount]:
    """
    Credentials and tools of the CI user that build steps expect under /root.

    :param ci_home: Home directory of the CI user on the host.
    :return: The default tool mounts.
    """
    mounts = [
        Mount(host_path=os.path.join(ci_home, name), container_path=f"/root/{name}")
        for name in (".ssh", ".m2", ".appscode", ".gitconfig", ".kube")
    ]
    mounts.extend(
        Mount(host_path=path, container_path=path)
        for path in ("/usr/local/bin/kubectl", "/usr/local/bin/appctl")
    )
    return mounts


def parse_mount_list(value: str) -> List[Mount]:
    """
    Parses ``host:container`` pairs separated by commas. A pair without a
    container path mounts the host path at the same location.

    :param value: The raw setting.
    :return: Parsed mounts, in order.
    """
    mounts = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        if ":" in item:
            host, container = item.split(":", 1)
        else:
            host, container = item, item
        mounts.append(Mount(host_path=host, container_path=container))
    return mounts


class Settings(BaseModel):
    """
    Configuration for a dockstep process. Every field can be set through a
    ``DOCKSTEP_<FIELD>`` variable, in the environment or in a .env file.
    """
    runtime: str = "docker"
    docker_binary: Optional[str] = None

    # Mounts
    node_root: Optional[str] = None
    build_data_root: str = "/mnt/ci-data"
    build_data_mount: str = "/mnt/build-data"
    ci_home: str = "/var/lib/jenkins"
    tool_mounts: Optional[List[Mount]] = None

    # Execution
    keepalive_command: str = "/bin/cat"
    shell: str = "/bin/sh"
    pull_attempts: int = Field(default=3, ge=1)

    blueprint_file: str = ".blueprint.yml"

    def effective_tool_mounts(self) -> List[Mount]:
        if self.tool_mounts is None:
            return default_tool_mounts(self.ci_home)
        return list(self.tool_mounts)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None,
                 environ: Optional[Dict[str, str]] = None) -> "Settings":
        """
        Builds settings from an optional .env file overlaid by the process
        environment.

        :param env_file: Path of a dotenv file, ignored when it does not exist.
        :param environ: Environment to read instead of ``os.environ``.
        :return: The settings.
        """
        values: Dict[str, str] = {}
        if env_file and os.path.exists(env_file):
            values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        values.update(os.environ if environ is None else environ)

        data = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key not in values:
                continue
            if name == "tool_mounts":
                data[name] = parse_mount_list(values[key])
            else:
                data[name] = values[key]
        return cls(**data)
