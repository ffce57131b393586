"""Tests for ephemeral disk enumeration."""

import os

import pytest

from disksetup.device_enumerator import DeviceEnumerator

PATTERN = "nvme-Amazon_EC2_NVMe_Instance_Storage_*"


class TestDeviceEnumerator:
    """Test cases for DeviceEnumerator."""

    @pytest.fixture
    def dev_tree(self, tmp_path):
        """Fake /dev with a by-id directory of symlinks."""
        dev = tmp_path / "dev"
        by_id = dev / "disk" / "by-id"
        by_id.mkdir(parents=True)
        return dev, by_id

    def _device(self, dev, name):
        node = dev / name
        node.touch()
        return node

    def _alias(self, by_id, alias, target):
        os.symlink(str(target), str(by_id / alias))

    def test_missing_directory_returns_empty(self, tmp_path):
        enumerator = DeviceEnumerator(str(tmp_path / "absent"), PATTERN)
        assert enumerator.enumerate() == []

    def test_no_matching_devices(self, dev_tree):
        dev, by_id = dev_tree
        self._alias(by_id, "nvme-Amazon_Elastic_Block_Store_vol0", self._device(dev, "nvme0n1"))

        assert DeviceEnumerator(str(by_id), PATTERN).enumerate() == []

    def test_aliases_collapse_onto_one_device(self, dev_tree):
        dev, by_id = dev_tree
        node = self._device(dev, "nvme1n1")
        self._alias(by_id, "nvme-Amazon_EC2_NVMe_Instance_Storage_AWS111", node)
        self._alias(by_id, "nvme-Amazon_EC2_NVMe_Instance_Storage_AWS111_1", node)

        disks = DeviceEnumerator(str(by_id), PATTERN).enumerate()

        assert len(disks) == 1
        assert disks[0].path == os.path.realpath(str(node))
        assert disks[0].alias.endswith("AWS111")

    def test_sorted_by_canonical_path(self, dev_tree):
        dev, by_id = dev_tree
        # Alias order is the reverse of device order
        self._alias(by_id, "nvme-Amazon_EC2_NVMe_Instance_Storage_AAA", self._device(dev, "nvme2n1"))
        self._alias(by_id, "nvme-Amazon_EC2_NVMe_Instance_Storage_BBB", self._device(dev, "nvme1n1"))

        disks = DeviceEnumerator(str(by_id), PATTERN).enumerate()

        assert [os.path.basename(disk.path) for disk in disks] == ["nvme1n1", "nvme2n1"]

    def test_partitions_and_dangling_links_skipped(self, dev_tree):
        dev, by_id = dev_tree
        node = self._device(dev, "nvme1n1")
        self._alias(by_id, "nvme-Amazon_EC2_NVMe_Instance_Storage_AAA", node)
        self._alias(by_id, "nvme-Amazon_EC2_NVMe_Instance_Storage_AAA-part1", self._device(dev, "nvme1n1p1"))
        self._alias(by_id, "nvme-Amazon_EC2_NVMe_Instance_Storage_GONE", dev / "nvme9n1")

        disks = DeviceEnumerator(str(by_id), PATTERN).enumerate()

        assert [disk.path for disk in disks] == [os.path.realpath(str(node))]
