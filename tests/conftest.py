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
Shared fixtures: a recording container runtime and a scripted launcher.
"""
import pytest

from dockstep.errors import ContainerEnvironmentError, ContainerStartError
from dockstep.MODELS.command_spec import CommandSpec
from dockstep.MODELS.execution_context import ExecutionContext
from dockstep.MODELS.settings import Settings


class FakeRuntime:
    """Container runtime that records every call instead of running anything."""

    def __init__(self):
        self.calls = []
        self.images = set()
        self.pull_ok = True
        self.build_result = "sha256:built"
        self.container_id = "c0ffee"
        self.run_error = None
        self.base_env = {"PATH": "/usr/local/bin:/usr/bin:/bin", "HOME": "/root"}
        self.env_error = False
        self.stop_ok = True
        self.run_requests = []
        self.exec_requests = []

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)

    def has_image(self, ref):
        self.calls.append(("has_image", ref))
        return ref in self.images

    def pull_image(self, ref):
        self.calls.append(("pull_image", ref))
        if self.pull_ok:
            self.images.add(ref)
        return self.pull_ok

    def build_image(self, context_dir, dockerfile_path, force_pull):
        self.calls.append(("build_image", context_dir, dockerfile_path, force_pull))
        return self.build_result

    def run_detached(self, image, workdir, mounts, ports, links, env, secret_keys,
                     network, memory, cpu, command):
        self.calls.append(("run_detached", image))
        self.run_requests.append({
            "image": image, "workdir": workdir, "mounts": list(mounts), "ports": dict(ports),
            "links": dict(links), "env": dict(env), "secret_keys": set(secret_keys),
            "network": network, "memory": memory, "cpu": cpu, "command": list(command),
        })
        if self.run_error:
            raise ContainerStartError(self.run_error, target=image)
        return self.container_id

    def exec_command(self, container_id, user, spec, env, secret_keys=()):
        self.calls.append(("exec_command", container_id, user))
        self.exec_requests.append({"container_id": container_id, "user": user,
                                   "spec": spec, "env": dict(env)})
        return spec.with_cmds(["docker", "exec", container_id] + list(spec.cmds))

    def execute_in(self, container_id, user, spec, env, secret_keys=()):
        self.exec_command(container_id, user, spec, env, secret_keys)
        return 0

    def get_env(self, container_id):
        self.calls.append(("get_env", container_id))
        if self.env_error:
            raise ContainerEnvironmentError("exec failed", target=container_id)
        return dict(self.base_env)

    def stop(self, container_id):
        self.calls.append(("stop", container_id))
        return self.stop_ok


class FakeProc:
    def __init__(self, spec, code, output):
        self.spec = spec
        self.code = code
        self.output = output
        self.killed = False

    def join(self):
        if self.output and self.spec.stdout is not None:
            self.spec.stdout.write(self.output)
        return self.code

    def kill(self):
        self.killed = True


class FakeLauncher:
    """Launcher answering with scripted output and exit codes keyed by command line."""

    def __init__(self):
        self.launched = []
        self.outputs = {("id", "-u"): b"1000\n", ("id", "-g"): b"100\n"}
        self.codes = {}
        self.default_code = 0

    def launch(self, spec: CommandSpec):
        self.launched.append(spec)
        key = tuple(spec.cmds)
        return FakeProc(spec, self.codes.get(key, self.default_code), self.outputs.get(key, b""))

    def commands(self):
        return [list(spec.cmds) for spec in self.launched]


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def host_launcher():
    return FakeLauncher()


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def settings(tmp_path):
    return Settings(build_data_root=str(tmp_path / "ci-data"), tool_mounts=[])


@pytest.fixture
def context(workspace):
    return ExecutionContext(
        job_name="demo",
        workspace=str(workspace),
        build_url="job/demo/7/",
        build_env={"BUILD_NUMBER": "7", "JOB_NAME": "demo"},
        host_env={"PATH": "/usr/bin:/bin", "HOME": "/var/lib/jenkins"},
    )
