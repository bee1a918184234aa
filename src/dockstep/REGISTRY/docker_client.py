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
Container runtime backed by the docker command line client.
Works with any CLI that speaks docker's syntax, such as podman.
"""

import logging
import subprocess
from typing import Collection, Dict, Iterable, List, Optional, Tuple

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_exponential

from ..errors import (
    CancellationSignal,
    ContainerEnvironmentError,
    ContainerStartError,
    ImageResolutionError,
)
from ..MODELS.command_spec import CommandSpec
from ..MODELS.job_spec import Mount
from ..MODELS.settings import RuntimeOptions
from ..RUNNERS.launcher import HostLauncher, Launcher, run

logger = logging.getLogger(__name__)


class DockerClient:
    """
    Drives containers through ``docker`` subcommands.
    """

    def __init__(
        self,
        binary: str = "docker",
        options: Optional[RuntimeOptions] = None,
        pull_attempts: int = 3,
        pull_wait=None,
        launcher: Optional[Launcher] = None,
    ):
        """
        Initialize the client.

        Args:
            binary: Name or path of the CLI executable.
            options: Verbosity and privilege switches for the current job.
            pull_attempts: How many times a failing pull is tried.
            pull_wait: tenacity wait strategy between pull attempts.
            launcher: Launcher used by execute_in. Defaults to a HostLauncher.
        """
        self.binary = binary
        self.options = options or RuntimeOptions()
        self.pull_attempts = pull_attempts
        self.pull_wait = pull_wait if pull_wait is not None else wait_exponential(multiplier=1, max=30)
        self.launcher = launcher or HostLauncher()

    def _run(self, args: List[str], masks: Optional[List[bool]] = None) -> subprocess.CompletedProcess:
        """Run a CLI subcommand to completion and capture its output."""
        argv = [self.binary] + args
        printable = CommandSpec(cmds=argv, masks=[False] + (masks or [])).masked_cmdline()
        logger.log(logging.INFO if self.options.verbose else logging.DEBUG, "$ %s", printable)
        try:
            result = subprocess.run(argv, capture_output=True, text=True)
        except KeyboardInterrupt as e:
            raise CancellationSignal(f"interrupted while running {printable}") from e
        if self.options.verbose and result.stdout.strip():
            logger.info(result.stdout.rstrip())
        return result

    @staticmethod
    def _last_line(text: str) -> str:
        lines = [line for line in (text or "").splitlines() if line.strip()]
        return lines[-1].strip() if lines else ""

    def has_image(self, ref: str) -> bool:
        """Check whether an image is present in the local image store."""
        return self._run(["image", "inspect", "--format", "{{.Id}}", ref]).returncode == 0

    def _pull_once(self, ref: str) -> bool:
        result = self._run(["pull", ref])
        if result.returncode != 0:
            logger.warning("Pull of %s failed: %s", ref, self._last_line(result.stderr))
        return result.returncode == 0

    def pull_image(self, ref: str) -> bool:
        """
        Pull an image, retrying failed attempts.

        Returns:
            True once a pull succeeds, False when every attempt failed.

        Raises:
            CancellationSignal: If interrupted, also while waiting between attempts.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.pull_attempts),
            wait=self.pull_wait,
            retry=retry_if_result(lambda pulled: not pulled),
            retry_error_callback=lambda state: False,
        )
        try:
            return retrying(self._pull_once, ref)
        except KeyboardInterrupt as e:
            raise CancellationSignal(f"interrupted while pulling {ref}") from e

    def build_image(self, context_dir: str, dockerfile_path: str, force_pull: bool) -> str:
        """
        Build an image and return its id.

        Args:
            context_dir: Build context directory on the host.
            dockerfile_path: Path of the Dockerfile on the host.
            force_pull: Always pull newer base images.
        """
        args = ["build", "--quiet", "--file", dockerfile_path]
        if force_pull:
            args.append("--pull")
        args.append(context_dir)
        result = self._run(args)
        image_id = self._last_line(result.stdout)
        if result.returncode != 0 or not image_id:
            raise ImageResolutionError(
                f"build failed: {self._last_line(result.stderr) or 'no image id returned'}",
                target=dockerfile_path,
            )
        return image_id

    def run_detached(self, image: str, workdir: str, mounts: Iterable[Mount],
                     ports: Dict[int, int], links: Dict[str, str], env: Dict[str, str],
                     secret_keys: Collection[str], network: Optional[str],
                     memory: Optional[str], cpu: Optional[str], command: List[str]) -> str:
        """
        Start a detached container and return its id.

        Environment values of ``secret_keys`` are masked in the logged command.
        """
        args = ["run", "--tty", "--detach"]
        if self.options.privileged:
            args.append("--privileged")
        args += ["--workdir", workdir]
        for mount in sorted(mounts, key=lambda m: (m.host_path, m.container_path)):
            args += ["--volume", mount.as_volume()]
        for container_port, host_port in sorted(ports.items()):
            args += ["--publish", f"{host_port}:{container_port}"]
        for name, alias in sorted(links.items()):
            args += ["--link", f"{name}:{alias}"]
        masks = [False] * len(args)
        env_args, env_masks = self._env_args(env, secret_keys)
        args += env_args
        masks += env_masks
        if network:
            args += ["--network", network]
        if memory:
            args += ["--memory", memory]
        if cpu:
            args += ["--cpus", cpu]
        args.append(image)
        args += command
        masks += [False] * (len(args) - len(masks))

        result = self._run(args, masks)
        container_id = self._last_line(result.stdout)
        if result.returncode != 0 or not container_id:
            raise ContainerStartError(
                f"run failed: {self._last_line(result.stderr) or 'no container id returned'}",
                target=image,
            )
        return container_id

    @staticmethod
    def _env_args(env: Dict[str, str], secret_keys: Collection[str]) -> Tuple[List[str], List[bool]]:
        args: List[str] = []
        masks: List[bool] = []
        for key in sorted(env):
            args += ["--env", f"{key}={env[key]}"]
            masks += [False, key in secret_keys]
        return args, masks

    def exec_command(self, container_id: str, user: str, spec: CommandSpec,
                     env: Dict[str, str], secret_keys: Collection[str] = ()) -> CommandSpec:
        """
        Rewrite a command so that launching it runs the original inside the
        container, as ``user`` and with exactly ``env``. Streams, working
        directory and masks of the original are carried over.
        """
        args = [self.binary, "exec"]
        if spec.stdin is not None:
            args.append("--interactive")
        args += ["--user", user]
        if spec.pwd:
            args += ["--workdir", spec.pwd]
        masks = [False] * len(args)
        env_args, env_masks = self._env_args(env, secret_keys)
        args += env_args + [container_id]
        masks += env_masks + [False]

        original_masks = spec.masks or []
        masks += [i < len(original_masks) and original_masks[i] for i in range(len(spec.cmds))]
        rewritten = spec.with_cmds(args + list(spec.cmds), masks)
        rewritten.env = {}
        rewritten.pwd = None
        return rewritten

    def execute_in(self, container_id: str, user: str, spec: CommandSpec,
                   env: Dict[str, str], secret_keys: Collection[str] = ()) -> int:
        """Run a command inside the container and wait for its exit status."""
        return run(self.launcher, self.exec_command(container_id, user, spec, env, secret_keys))

    def get_env(self, container_id: str) -> Dict[str, str]:
        """
        Read the environment a process started in the container sees.

        Raises:
            ContainerEnvironmentError: If the runtime call fails.
        """
        result = self._run(["exec", container_id, "env"])
        if result.returncode != 0:
            raise ContainerEnvironmentError(
                f"cannot read environment: {self._last_line(result.stderr)}", target=container_id
            )
        env = {}
        for line in result.stdout.splitlines():
            if "=" not in line:
                continue
            key, value = line.split("=", 1)
            env[key] = value
        return env

    def stop(self, container_id: str) -> bool:
        """Stop and remove the container together with its anonymous volumes."""
        result = self._run(["rm", "--force", "--volumes", container_id])
        if result.returncode != 0:
            logger.error("Failed to remove container %s: %s", container_id, self._last_line(result.stderr))
        return result.returncode == 0
