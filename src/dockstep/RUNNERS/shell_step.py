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
Build step that runs the script of a blueprint job with a shell.
"""
import logging
import os
import tempfile
from typing import BinaryIO, List, Optional

from ..MODELS.command_spec import CommandSpec
from ..MODELS.execution_context import ExecutionContext
from ..MODELS.job_spec import JobSpec
from .launcher import Launcher

logger = logging.getLogger(__name__)


def normalize_script(script: str) -> str:
    """
    Converts line endings to ``\\n``. Older shells take a script whose first
    line holds non-ASCII text for a binary, so a script that does not start
    with a shebang gets a leading line feed.
    """
    text = script.replace("\r\n", "\n").replace("\r", "\n")
    if not text.startswith("#!") and not text.startswith("\n"):
        text = "\n" + text
    return text


class ShellStep:
    """
    Executes the script of a job through a launcher, which may be decorated
    to run it in the build container.
    """
    def __init__(self, job: JobSpec, shell: str = "/bin/sh"):
        """
        Args:
            job (JobSpec): Job whose script runs.
            shell (str): Shell interpreter.
        """
        self.job = job
        self.shell = shell

    def build_command_line(self, script_path: str) -> List[str]:
        return [self.shell, "-xe", script_path]

    def create_script_file(self, workspace: str) -> str:
        """
        Writes the job script to a temporary file in the workspace, which is
        mounted in the container at the same path.

        Returns:
            str: Path of the script.
        """
        fd, path = tempfile.mkstemp(prefix="dockstep", suffix=".sh", dir=workspace)
        with os.fdopen(fd, "w") as f:
            f.write(normalize_script(self.job.script))
        return path

    def perform(self, context: ExecutionContext, launcher: Launcher,
                stdout: Optional[BinaryIO] = None) -> bool:
        """
        Runs the script and waits for it.

        Args:
            context (ExecutionContext): Context the step belongs to.
            launcher (Launcher): Launcher to run the shell with.
            stdout (Optional[BinaryIO]): Sink for the output of the script.

        Returns:
            bool: True if the script exited with status 0.
        """
        try:
            script = self.create_script_file(context.workspace)
        except OSError as e:
            logger.error("Unable to produce a script file: %s", e)
            return False

        code = -1
        try:
            spec = CommandSpec(
                cmds=self.build_command_line(script),
                env=dict(context.build_env),
                stdout=stdout,
                pwd=context.workspace,
            )
            try:
                code = launcher.launch(spec).join()
            except OSError as e:
                logger.error("Command execution failed: %s", e)
            return code == 0
        finally:
            try:
                os.remove(script)
            except OSError as e:
                logger.error("Unable to delete script file %s: %s", script, e)
