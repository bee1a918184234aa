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
Resolution of the image a job runs in: pulled by reference or built from a Dockerfile.
"""
import logging
import os
from typing import Dict, Tuple

from ..errors import ConfigurationError, ImageResolutionError, MissingArtifactError
from ..MODELS.job_spec import ContainerSpec
from ..REGISTRY.runtime import ContainerRuntime
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)


def split_dockerfile_path(path: str) -> Tuple[str, str]:
    """
    Splits a Dockerfile path into build context and Dockerfile name.

    ``./docker/Dockerfile`` gives ``("docker", "Dockerfile")``; a bare
    ``Dockerfile`` gives ``("", "Dockerfile")``, the workspace root.

    :param path: Path relative to the workspace.
    :return: Context directory and Dockerfile name.
    """
    if path.startswith("./"):
        path = path[2:]
    index = path.rfind("/")
    if index == -1:
        return "", path
    return path[:index], path[index + 1:]


class ImageResolver:
    """
    Produces a usable image reference for a container spec.
    """
    def __init__(self, runtime: ContainerRuntime, workspace: str):
        """
        :param runtime: Runtime that pulls and builds images.
        :param workspace: Directory Dockerfile paths are relative to.
        """
        self.runtime = runtime
        self.workspace = workspace

    def resolve(self, spec: ContainerSpec, env: Dict[str, str]) -> str:
        """
        Pulls or builds the image of a container spec.

        :param spec: The job's container section.
        :param env: Variables available to ``$VAR`` references.
        :return: The resolved image reference.
        :raises ConfigurationError: If the container section names neither image nor Dockerfile.
        :raises MissingArtifactError: If the Dockerfile does not exist.
        :raises ImageResolutionError: If the pull or build fails.
        """
        if (spec.image or "").strip():
            return self._pull(spec, env)
        if (spec.build_dockerfile_path or "").strip():
            return self._build(spec, env)
        raise ConfigurationError("container section specifies neither image nor buildDockerfilePath")

    def _pull(self, spec: ContainerSpec, env: Dict[str, str]) -> str:
        image = EnvironmentInterpolator.expand(spec.image.strip(), env)
        if spec.force_pull or not self.runtime.has_image(image):
            logger.info("Pull Docker image %s from repository ...", image)
            if not self.runtime.pull_image(image):
                raise ImageResolutionError("failed to pull image", target=image)
        return image

    def _build(self, spec: ContainerSpec, env: Dict[str, str]) -> str:
        context, dockerfile = split_dockerfile_path(spec.build_dockerfile_path.strip())
        context = EnvironmentInterpolator.expand(context, env)
        context_dir = os.path.join(self.workspace, context)
        dockerfile_path = os.path.join(context_dir, dockerfile)
        display = f"{context}/{dockerfile}" if context else dockerfile

        if not os.path.isfile(dockerfile_path):
            raise MissingArtifactError("project is missing a Dockerfile", target=display)

        logger.info("Build Docker image from %s ...", display)
        image = self.runtime.build_image(context_dir, dockerfile_path, spec.force_pull)
        if not image:
            raise ImageResolutionError("build returned no image", target=display)
        return image
