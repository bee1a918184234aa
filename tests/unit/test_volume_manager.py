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
Unit tests for the volume manager.
"""
import os
import tempfile
import pytest
from dockstep.MANAGERS.volume_manager import VolumeManager
from dockstep.MODELS.job_spec import Mount
from dockstep.MODELS.settings import Settings


class TestVolumeManager:
    """Tests for VolumeManager."""

    @pytest.fixture
    def vm(self, settings):
        return VolumeManager(settings)

    def test_build_data_dir(self, vm, settings):
        expected = os.path.join(settings.build_data_root, "7", "build-data")
        assert vm.build_data_dir("job/demo/7/") == expected

    def test_build_data_dir_nested_folder(self, vm, settings):
        expected = os.path.join(settings.build_data_root, "job/release/12", "build-data")
        assert vm.build_data_dir("job/team/job/release/12/") == expected

    @pytest.mark.parametrize("url", [None, "", "view/all/"])
    def test_build_data_dir_without_job(self, vm, url):
        assert vm.build_data_dir(url) is None

    def test_prepare_creates_directory(self, vm, settings):
        mount = vm.prepare_build_data("job/demo/7/")
        assert os.path.isdir(mount.host_path)
        assert mount.container_path == settings.build_data_mount

    def test_prepare_without_job(self, vm, caplog):
        assert vm.prepare_build_data("view/all/") is None
        assert "No build data directory" in caplog.text

    def test_mandatory_mounts(self, vm, workspace):
        mounts = vm.mandatory_mounts(str(workspace), "job/demo/7/")
        tmp = tempfile.gettempdir()
        assert mounts[0] == Mount(host_path=str(workspace), container_path=str(workspace))
        assert mounts[1] == Mount(host_path=tmp, container_path=tmp)
        assert len(mounts) == 3

    def test_node_root_replaces_workspace(self, tmp_path, workspace):
        settings = Settings(node_root="/srv/agent", build_data_root=str(tmp_path), tool_mounts=[])
        mounts = VolumeManager(settings).mandatory_mounts(str(workspace), None)
        assert mounts[0] == Mount(host_path="/srv/agent", container_path="/srv/agent")
        assert len(mounts) == 2

    def test_tool_mounts_included(self, tmp_path, workspace):
        settings = Settings(build_data_root=str(tmp_path), ci_home="/home/ci")
        mounts = VolumeManager(settings).mandatory_mounts(str(workspace), None)
        assert Mount(host_path="/home/ci/.m2", container_path="/root/.m2") in mounts

    def test_aggregate_deduplicates(self, vm, workspace):
        declared = [
            Mount(host_path=str(workspace), container_path=str(workspace)),
            Mount(host_path="/srv/cache", container_path="/cache"),
        ]
        mounts = vm.aggregate(str(workspace), "job/demo/7/", declared)
        assert isinstance(mounts, set)
        assert len(mounts) == 4
        assert Mount(host_path="/srv/cache", container_path="/cache") in mounts
