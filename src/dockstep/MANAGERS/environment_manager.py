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
Managers for merging the environment layers a containerized step sees.
"""
import logging
import warnings
from typing import Dict, Mapping

from ..errors import EnvironmentInvariantViolation
from ..UTILS.string_interpolation import EnvironmentInterpolator

logger = logging.getLogger(__name__)


class EnvironmentManager:
    """
    Merges environment layers for the build container.

    The search path of the container belongs to its image: tools on the
    worker live elsewhere, so a PATH coming from the worker or a build
    step would break command lookup inside the container.
    """
    def __init__(self, search_path_key: str = "PATH"):
        """
        :param search_path_key: Name of the command search path variable.
        """
        self.search_path_key = search_path_key

    def reconcile(self, base: Mapping[str, str], overlay: Mapping[str, str]) -> Dict[str, str]:
        """
        Applies an overlay on top of the container's own environment.

        Every overlay key wins, except that the search path is pinned to the
        base value when the base has one and the overlay changes it. A pinned
        search path is reported as an EnvironmentInvariantViolation warning.

        :param base: Environment read from the running container.
        :param overlay: Variables contributed by the context and the step.
        :return: A new dictionary; neither input is modified.
        """
        merged = dict(base)
        merged.update(overlay)

        original = base.get(self.search_path_key, "")
        current = merged.get(self.search_path_key, "")
        if current != original and original:
            message = f"{self.search_path_key} may not be overridden by build steps"
            logger.warning("%s; keeping %s", message, original)
            warnings.warn(message, EnvironmentInvariantViolation, stacklevel=2)
            merged[self.search_path_key] = original
        return merged

    def container_environment(self, build_env: Mapping[str, str],
                              host_env: Mapping[str, str]) -> Dict[str, str]:
        """
        Selects the build variables passed to the container at start.

        Only variables that belong to the build are kept: anything the worker
        host defines, and the search path, make no sense inside the container.
        References between the kept values are resolved.

        :param build_env: Variables of the build.
        :param host_env: Environment of the worker host.
        :return: The start environment of the container.
        """
        selected = {
            key: value for key, value in build_env.items()
            if key != self.search_path_key and key not in host_env
        }
        logger.debug("container start environment: %s", sorted(selected))
        return EnvironmentInterpolator.resolve(selected)
