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
Volume management for the build container: which host paths get mounted.
"""
import logging
import os
import tempfile
from typing import Iterable, List, Optional, Set

from ..MODELS.job_spec import Mount
from ..MODELS.settings import Settings

logger = logging.getLogger(__name__)


class VolumeManager:
    """
    Aggregates the bind mounts of a build container.
    """
    def __init__(self, settings: Settings):
        """
        :param settings: Source of the build-data and tool mount locations.
        """
        self.settings = settings

    def build_data_dir(self, build_url: Optional[str]) -> Optional[str]:
        """
        Derives the host directory holding data of one build.

        A build URL like ``job/demo/7/`` maps to ``<build_data_root>/7/build-data``.

        :param build_url: Relative URL of the build.
        :return: The directory, or None when the URL names no job.
        """
        if not build_url:
            return None
        index = build_url.find("job/")
        if index == -1:
            return None
        rest = build_url[index + len("job/"):]
        slash = rest.find("/")
        suffix = rest[slash + 1:] if slash != -1 else ""
        return os.path.join(self.settings.build_data_root, suffix.strip("/"), "build-data")

    def prepare_build_data(self, build_url: Optional[str]) -> Optional[Mount]:
        """
        Creates the build-data directory on the host and returns its mount.

        :param build_url: Relative URL of the build.
        :return: The mount, or None when no directory applies.
        """
        path = self.build_data_dir(build_url)
        if path is None:
            logger.warning("No build data directory for build URL %r, not mounting %s",
                           build_url, self.settings.build_data_mount)
            return None
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            logger.warning("Build data directory %s could not be created: %s", path, e)
        return Mount(host_path=path, container_path=self.settings.build_data_mount)

    def mandatory_mounts(self, workspace: str, build_url: Optional[str]) -> List[Mount]:
        """
        Mounts every build container gets.

        The worker root makes the workspace and tools visible, the temp
        directory holds temporary files build tools hand to each other.

        :param workspace: Workspace of the build; stands in for the worker root when none is configured.
        :param build_url: Relative URL of the build.
        :return: The mounts.
        """
        root = self.settings.node_root or workspace
        tmp = tempfile.gettempdir()
        mounts = [
            Mount(host_path=root, container_path=root),
            Mount(host_path=tmp, container_path=tmp),
        ]
        build_data = self.prepare_build_data(build_url)
        if build_data is not None:
            mounts.append(build_data)
        mounts.extend(self.settings.effective_tool_mounts())
        return mounts

    def aggregate(self, workspace: str, build_url: Optional[str],
                  declared: Iterable[Mount]) -> Set[Mount]:
        """
        Unions the mandatory mounts with the ones the job declares.

        :param workspace: Workspace of the build.
        :param build_url: Relative URL of the build.
        :param declared: Mounts from the job's container section.
        :return: The deduplicated mount set.
        """
        mounts = set(self.mandatory_mounts(workspace, build_url))
        mounts.update(declared)
        return mounts
