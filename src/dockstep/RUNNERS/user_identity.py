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
Resolution of the numeric user the build container runs commands as.
"""
import io
from typing import Optional

from ..errors import ContainerStartError
from ..MODELS.command_spec import CommandSpec
from .launcher import Launcher, run


def _id(launcher: Launcher, flag: str) -> str:
    out = io.BytesIO()
    code = run(launcher, CommandSpec(cmds=["id", flag], stdout=out, quiet=True))
    value = out.getvalue().decode().strip()
    if code != 0 or not value:
        raise ContainerStartError(f"'id {flag}' failed with exit status {code}")
    return value


def resolve_user_identity(launcher: Launcher, group: Optional[str] = None) -> str:
    """
    Asks the worker which uid, and unless overridden which gid, runs the build.

    Commands in the container run as this identity so that files written to
    mounted host paths belong to the build user rather than to root.

    Args:
        launcher (Launcher): Launcher running on the worker host.
        group (Optional[str]): Group override from the container section.

    Returns:
        str: ``uid:gid``.
    """
    uid = _id(launcher, "-u")
    gid = group.strip() if group and group.strip() else _id(launcher, "-g")
    return f"{uid}:{gid}"
