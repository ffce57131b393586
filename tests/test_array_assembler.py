"""Tests for md array assembly."""

import os

import pytest
from unittest.mock import Mock

from disksetup.array_assembler import ArrayAssembler, MdDeviceLookup
from disksetup.errors import ArrayError, CommandError
from disksetup.models import EphemeralDisk, RaidLevel
from disksetup.system_executor import SystemCommandExecutor

DISKS = [EphemeralDisk('/dev/nvme1n1'), EphemeralDisk('/dev/nvme2n1')]


class TestMdDeviceLookup:
    """Test cases for MdDeviceLookup."""

    def test_missing_directory(self, tmp_path):
        assert MdDeviceLookup(str(tmp_path / "md")).find("kubernetes") is None

    def test_exact_name(self, tmp_path):
        (tmp_path / "kubernetes").touch()
        assert MdDeviceLookup(str(tmp_path)).find("kubernetes") == str(tmp_path / "kubernetes")

    def test_host_suffixed_name(self, tmp_path):
        (tmp_path / "ip-10-0-0-1:kubernetes_0").touch()
        found = MdDeviceLookup(str(tmp_path)).find("kubernetes")
        assert found == str(tmp_path / "ip-10-0-0-1:kubernetes_0")

    def test_last_match_wins(self, tmp_path):
        (tmp_path / "kubernetes").touch()
        (tmp_path / "kubernetes_1").touch()
        assert MdDeviceLookup(str(tmp_path)).find("kubernetes") == str(tmp_path / "kubernetes_1")

    def test_other_arrays_ignored(self, tmp_path):
        (tmp_path / "kubernetes-old").touch()
        (tmp_path / "scratch").touch()
        (tmp_path / "oldkubernetes").touch()
        (tmp_path / "k8s-kubernetes").touch()
        (tmp_path / "kubernetesx").touch()
        assert MdDeviceLookup(str(tmp_path)).find("kubernetes") is None


class TestArrayAssembler:
    """Test cases for ArrayAssembler."""

    @pytest.fixture
    def executor(self):
        executor = Mock(spec=SystemCommandExecutor)
        executor.dry_run = False
        executor.execute_mdadm_command.return_value = (True, "ARRAY /dev/md/kubernetes metadata=1.2\n", "")
        return executor

    @pytest.fixture
    def lookup(self):
        lookup = Mock(spec=MdDeviceLookup)
        lookup.find.return_value = "/dev/md/kubernetes"
        return lookup

    def test_creates_and_records_array(self, tmp_path, executor, lookup):
        config_path = str(tmp_path / "mdadm.conf")
        assembler = ArrayAssembler(executor, "kubernetes", config_path, lookup)

        array = assembler.ensure_array(DISKS, RaidLevel.RAID0)

        create_call, scan_call = executor.execute_mdadm_command.call_args_list
        assert create_call[0][0] == [
            '--create', '--force', '--verbose', '/dev/md/kubernetes',
            '--level=0', '--name=kubernetes', '--raid-devices=2',
            '/dev/nvme1n1', '/dev/nvme2n1'
        ]
        assert scan_call[0][0] == ['--detail', '--scan']
        executor.write_file.assert_called_once_with(config_path, "ARRAY /dev/md/kubernetes metadata=1.2\n")

        assert array.device_path == "/dev/md/kubernetes"
        assert array.level is RaidLevel.RAID0
        assert array.members == ['/dev/nvme1n1', '/dev/nvme2n1']

    def test_existing_record_skips_creation(self, tmp_path, executor, lookup):
        config_path = tmp_path / "mdadm.conf"
        config_path.write_text("ARRAY /dev/md/kubernetes\n")
        lookup.find.return_value = "/dev/md/ip-10-0-0-1:kubernetes_0"
        assembler = ArrayAssembler(executor, "kubernetes", str(config_path), lookup)

        array = assembler.ensure_array(DISKS, RaidLevel.RAID10)

        executor.execute_mdadm_command.assert_not_called()
        executor.write_file.assert_not_called()
        assert array.device_path == "/dev/md/ip-10-0-0-1:kubernetes_0"

    def test_missing_device_after_creation(self, tmp_path, executor, lookup):
        lookup.find.return_value = None
        assembler = ArrayAssembler(executor, "kubernetes", str(tmp_path / "mdadm.conf"), lookup)

        with pytest.raises(ArrayError):
            assembler.ensure_array(DISKS, RaidLevel.RAID0)

    def test_dry_run_assumes_array_device(self, tmp_path, executor, lookup):
        executor.dry_run = True
        lookup.find.return_value = None
        assembler = ArrayAssembler(executor, "kubernetes", str(tmp_path / "mdadm.conf"), lookup)

        array = assembler.ensure_array(DISKS, RaidLevel.RAID0)

        assert array.device_path == "/dev/md/kubernetes"
        assert executor.execute_mdadm_command.call_count == 1
        executor.write_file.assert_not_called()

    def test_create_failure_leaves_no_record(self, tmp_path, executor, lookup):
        config_path = str(tmp_path / "mdadm.conf")
        executor.execute_mdadm_command.side_effect = CommandError(['mdadm', '--create'], 1, "busy")
        assembler = ArrayAssembler(executor, "kubernetes", config_path, lookup)

        with pytest.raises(CommandError):
            assembler.ensure_array(DISKS, RaidLevel.RAID0)

        executor.write_file.assert_not_called()
        assert not os.path.exists(config_path)
