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
Exceptions raised while preparing and driving a build container.
"""
from typing import Optional


class DockstepError(Exception):
    """
    Base class for fatal errors. ``target`` names the image or build
    context the error relates to, when one is known.
    """

    def __init__(self, message: str, target: Optional[str] = None):
        self.message = message
        self.target = target
        super().__init__(f"{target}: {message}" if target else message)


class ConfigurationError(DockstepError):
    """The job has no container section, or names neither an image nor a Dockerfile."""


class MissingArtifactError(DockstepError):
    """The referenced Dockerfile does not exist."""


class ImageResolutionError(DockstepError):
    """Pulling or building the image failed."""


class ContainerStartError(DockstepError):
    """The runtime could not start the build container."""


class ContainerEnvironmentError(DockstepError):
    """The base environment of the running container could not be read."""


class TeardownError(DockstepError):
    """Stopping or removing the build container failed."""


class EnvironmentInvariantViolation(UserWarning):
    """A build step tried to change PATH inside the container."""


class CancellationSignal(BaseException):
    """
    The pipeline interrupted a blocking call.

    Derives from BaseException, like asyncio.CancelledError, so handlers
    written for ordinary failures do not turn an abort into an exit status.
    """
