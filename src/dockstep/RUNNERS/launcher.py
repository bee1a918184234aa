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
Launching of host processes with caller-supplied stream sinks.
"""
import logging
import os
import shutil
import subprocess
import threading
from typing import BinaryIO, List, Optional, Protocol

from ..errors import CancellationSignal
from ..MODELS.command_spec import CommandSpec

logger = logging.getLogger(__name__)


class Proc(Protocol):
    """
    A started process.
    """
    def join(self) -> int: ...

    def kill(self) -> None: ...


class Launcher(Protocol):
    """
    The capability to start a process described by a CommandSpec.
    """
    def launch(self, spec: CommandSpec) -> Proc: ...


def _pump(source: BinaryIO, sink: Optional[BinaryIO]) -> None:
    """
    Copies a child stream into a sink until EOF.
    """
    for chunk in iter(lambda: source.read1(8192), b""):
        if sink is not None:
            sink.write(chunk)
            sink.flush()
    source.close()


class HostProc:
    """
    A process started on the host by HostLauncher.
    """
    def __init__(self, process: subprocess.Popen, spec: CommandSpec):
        """
        Starts the threads that copy the child's output to the caller's sinks.

        Args:
            process (subprocess.Popen): The started child.
            spec (CommandSpec): The spec it was started from.
        """
        self.process = process
        self.spec = spec
        self._pumps: List[threading.Thread] = []
        if process.stdout is not None:
            self._start_pump(process.stdout, spec.stdout)
        if process.stderr is not None:
            self._start_pump(process.stderr, spec.stderr)
        if spec.stdin is not None and process.stdin is not None:
            self._feed_stdin(spec.stdin)

    def _start_pump(self, source: BinaryIO, sink: Optional[BinaryIO]):
        thread = threading.Thread(target=_pump, args=(source, sink), daemon=True)
        thread.start()
        self._pumps.append(thread)

    def _feed_stdin(self, stdin: BinaryIO):
        def feed():
            try:
                shutil.copyfileobj(stdin, self.process.stdin)
            except BrokenPipeError:
                pass
            finally:
                self.process.stdin.close()
        thread = threading.Thread(target=feed, daemon=True)
        thread.start()
        self._pumps.append(thread)

    @property
    def pid(self) -> int:
        return self.process.pid

    def join(self) -> int:
        """
        Waits for the process and for its output to be copied.

        Returns:
            int: The exit status.

        Raises:
            CancellationSignal: If interrupted while waiting; the child is killed first.
        """
        try:
            code = self.process.wait()
            for thread in self._pumps:
                thread.join()
        except KeyboardInterrupt as e:
            self.kill()
            raise CancellationSignal(f"interrupted while running {self.spec.masked_cmdline()}") from e
        return code

    def kill(self) -> None:
        if self.process.poll() is None:
            self.process.kill()
            self.process.wait()


class HostLauncher:
    """
    Starts processes directly on the worker. The child inherits the
    worker's environment overlaid with the command's ``env``.
    """
    def __init__(self, base_env: Optional[dict] = None):
        """
        Args:
            base_env (Optional[dict]): Environment children inherit; defaults to os.environ.
        """
        self.base_env = dict(os.environ) if base_env is None else dict(base_env)

    def launch(self, spec: CommandSpec) -> HostProc:
        """
        Starts the process.

        Args:
            spec (CommandSpec): What to run.

        Returns:
            HostProc: The started process.
        """
        env = dict(self.base_env)
        env.update(spec.env)

        if spec.quiet:
            logger.debug("$ %s", spec.masked_cmdline())
        else:
            logger.info("$ %s", spec.masked_cmdline())

        process = subprocess.Popen(
            spec.cmds,
            env=env,
            cwd=spec.pwd,
            stdin=subprocess.PIPE if spec.stdin is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE if spec.stderr is not None else subprocess.STDOUT,
            # Avoid shell=True for security reasons (CWE-78)
            shell=False,
        )
        return HostProc(process, spec)


def run(launcher: Launcher, spec: CommandSpec) -> int:
    """
    Launches a spec and waits for it.
    """
    return launcher.launch(spec).join()
