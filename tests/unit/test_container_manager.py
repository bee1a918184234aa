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
Unit tests for the container lifecycle manager.
"""
import os
import tempfile
import pytest
from dockstep.errors import ContainerStartError, TeardownError
from dockstep.MANAGERS.container_manager import ContainerManager
from dockstep.MODELS.container_handle import ContainerState
from dockstep.MODELS.job_spec import ContainerSpec, Mount


@pytest.fixture
def manager(context, runtime, host_launcher, settings):
    return ContainerManager(context, runtime, host_launcher, settings)


class TestEnsureContainer:
    """Tests for starting the build container."""

    def test_starts_detached_container(self, manager, runtime, context):
        container_id = manager.ensure_container(ContainerSpec(image="alpine:3.18"), "alpine:3.18")

        assert container_id == "c0ffee"
        assert context.handle.container_id == "c0ffee"
        assert context.handle.image_id == "alpine:3.18"
        assert context.handle.state == ContainerState.RUNNING
        request = runtime.run_requests[0]
        assert request["image"] == "alpine:3.18"
        assert request["workdir"] == context.workspace
        assert request["command"] == ["/bin/cat"]

    def test_second_call_is_a_no_op(self, manager, runtime):
        spec = ContainerSpec(image="alpine:3.18")
        manager.ensure_container(spec, "alpine:3.18")
        manager.ensure_container(spec, "alpine:3.18")
        assert runtime.count("run_detached") == 1

    def test_declared_command_is_split(self, manager, runtime):
        manager.ensure_container(ContainerSpec(image="x", command="sleep infinity"), "x")
        assert runtime.run_requests[0]["command"] == ["sleep", "infinity"]

    def test_limits_and_network_are_passed(self, manager, runtime):
        spec = ContainerSpec(image="x", network="host", memory="2g", cpu="1.5")
        manager.ensure_container(spec, "x")
        request = runtime.run_requests[0]
        assert (request["network"], request["memory"], request["cpu"]) == ("host", "2g", "1.5")

    def test_start_environment_excludes_host_keys(self, manager, runtime, context):
        context.build_env["HOME"] = "/var/lib/jenkins"
        context.build_env["PATH"] = "/usr/bin"
        context.secret_keys.add("TOKEN")
        context.build_env["TOKEN"] = "s3cr3t"
        manager.ensure_container(ContainerSpec(image="x"), "x")
        request = runtime.run_requests[0]
        assert request["env"] == {"BUILD_NUMBER": "7", "JOB_NAME": "demo", "TOKEN": "s3cr3t"}
        assert request["secret_keys"] == {"TOKEN"}

    def test_user_identity_is_resolved_on_the_host(self, manager, host_launcher, context):
        manager.ensure_container(ContainerSpec(image="x"), "x")
        assert context.handle.user_id == "1000:100"
        assert host_launcher.commands() == [["id", "-u"], ["id", "-g"]]

    def test_group_override_skips_id_g(self, manager, host_launcher, context):
        manager.ensure_container(ContainerSpec(image="x", group="999"), "x")
        assert context.handle.user_id == "1000:999"
        assert host_launcher.commands() == [["id", "-u"]]

    def test_failed_identity_aborts_before_run(self, manager, runtime, host_launcher, context):
        host_launcher.codes[("id", "-u")] = 1
        with pytest.raises(ContainerStartError):
            manager.ensure_container(ContainerSpec(image="x"), "x")
        assert runtime.count("run_detached") == 0
        assert context.handle.state == ContainerState.UNSTARTED

    def test_start_failure_leaves_no_container(self, manager, runtime, context):
        runtime.run_error = "port is already allocated"
        with pytest.raises(ContainerStartError) as excinfo:
            manager.ensure_container(ContainerSpec(image="x"), "x")
        assert "port is already allocated" in str(excinfo.value)
        assert context.handle.container_id is None
        assert context.handle.state == ContainerState.UNSTARTED
        assert manager.teardown() is True
        assert runtime.count("stop") == 0


class TestMounts:
    """Tests for mount aggregation."""

    def test_duplicate_mounts_collapse(self, manager, runtime):
        spec = ContainerSpec(image="x", mounts=[
            Mount(host_path="/data", container_path="/data"),
            Mount(host_path="/data", container_path="/data"),
        ])
        manager.ensure_container(spec, "x")
        mounts = runtime.run_requests[0]["mounts"]
        assert mounts.count(Mount(host_path="/data", container_path="/data")) == 1

    def test_mandatory_mounts(self, manager, runtime, context, settings):
        manager.ensure_container(ContainerSpec(image="x"), "x")
        mounts = set(runtime.run_requests[0]["mounts"])
        tmp = tempfile.gettempdir()
        build_data = os.path.join(settings.build_data_root, "7", "build-data")
        assert Mount(host_path=context.workspace, container_path=context.workspace) in mounts
        assert Mount(host_path=tmp, container_path=tmp) in mounts
        assert Mount(host_path=build_data, container_path="/mnt/build-data") in mounts
        assert os.path.isdir(build_data)

    def test_tool_mounts_are_added(self, context, runtime, host_launcher, settings):
        settings.tool_mounts = [Mount(host_path="/opt/tools", container_path="/tools")]
        ContainerManager(context, runtime, host_launcher, settings).ensure_container(ContainerSpec(image="x"), "x")
        assert Mount(host_path="/opt/tools", container_path="/tools") in runtime.run_requests[0]["mounts"]

    def test_build_url_without_job_skips_build_data(self, manager, runtime, context):
        context.build_url = "view/all/"
        manager.ensure_container(ContainerSpec(image="x"), "x")
        container_paths = {m.container_path for m in runtime.run_requests[0]["mounts"]}
        assert "/mnt/build-data" not in container_paths


class TestEnableAndTeardown:
    """Tests for enabling the decorator and releasing the container."""

    def test_enable_requires_container(self, manager):
        with pytest.raises(RuntimeError):
            manager.enable()

    def test_enable_after_start(self, manager, context):
        manager.ensure_container(ContainerSpec(image="x"), "x")
        manager.enable()
        assert context.handle.enabled is True

    def test_teardown_without_container_is_a_no_op(self, manager, runtime):
        assert manager.teardown() is True
        assert runtime.calls == []

    def test_teardown_is_idempotent(self, manager, runtime, context):
        manager.ensure_container(ContainerSpec(image="x"), "x")
        manager.enable()
        assert manager.teardown() is True
        assert manager.teardown() is True
        assert runtime.count("stop") == 1
        assert context.handle.state == ContainerState.TORN_DOWN
        assert context.handle.enabled is False

    def test_failed_teardown_is_terminal(self, manager, runtime, context):
        runtime.stop_ok = False
        manager.ensure_container(ContainerSpec(image="x"), "x")
        with pytest.raises(TeardownError):
            manager.teardown()
        assert context.handle.is_torn_down
        assert manager.teardown() is True
        assert runtime.count("stop") == 1
