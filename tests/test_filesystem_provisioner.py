"""Unit tests for FilesystemProvisioner."""

import unittest
from unittest.mock import Mock

from disksetup.errors import CommandError, FilesystemError
from disksetup.filesystem_provisioner import LOG_STRIPE_UNIT, FilesystemProvisioner
from disksetup.system_executor import SystemCommandExecutor


class TestFilesystemProvisioner(unittest.TestCase):
    """Test cases for FilesystemProvisioner."""

    def setUp(self):
        self.executor = Mock(spec=SystemCommandExecutor)
        self.executor.dry_run = False
        self.provisioner = FilesystemProvisioner(self.executor)

    def test_blank_device_is_formatted(self):
        """Test mkfs runs on a device without a signature."""
        self.executor.execute_lsblk_command.return_value = (True, "\n", "")
        self.executor.execute_mkfs_command.return_value = (True, "", "")

        self.assertTrue(self.provisioner.ensure_filesystem('/dev/md127'))

        self.executor.execute_lsblk_command.assert_called_once_with('/dev/md127', 'FSTYPE', check=True)
        self.executor.execute_mkfs_command.assert_called_once_with('/dev/md127', LOG_STRIPE_UNIT, check=True)
        self.assertEqual(LOG_STRIPE_UNIT, "su=8b")

    def test_formatted_device_is_left_alone(self):
        """Test any existing signature prevents formatting."""
        for signature in ("xfs\n", "ext4\n"):
            with self.subTest(signature=signature):
                self.executor.reset_mock()
                self.executor.execute_lsblk_command.return_value = (True, signature, "")

                self.assertFalse(self.provisioner.ensure_filesystem('/dev/nvme1n1'))
                self.executor.execute_mkfs_command.assert_not_called()

    def test_lsblk_failure(self):
        """Test an unreadable device raises FilesystemError."""
        self.executor.execute_lsblk_command.side_effect = CommandError(['lsblk'], 32, "not a block device")

        with self.assertRaises(FilesystemError):
            self.provisioner.ensure_filesystem('/dev/md127')
        self.executor.execute_mkfs_command.assert_not_called()

    def test_lsblk_failure_in_dry_run(self):
        """Test dry run treats a missing array device as blank."""
        self.executor.dry_run = True
        self.executor.execute_lsblk_command.side_effect = CommandError(['lsblk'], 32, "not found")
        self.executor.execute_mkfs_command.return_value = (True, "DRY RUN", "")

        self.assertEqual(self.provisioner.get_signature('/dev/md/kubernetes'), "")
        self.assertTrue(self.provisioner.ensure_filesystem('/dev/md/kubernetes'))

    def test_mkfs_failure(self):
        """Test mkfs failures surface as FilesystemError."""
        self.executor.execute_lsblk_command.return_value = (True, "", "")
        self.executor.execute_mkfs_command.side_effect = CommandError(['mkfs.xfs'], 1, "error")

        with self.assertRaises(FilesystemError):
            self.provisioner.ensure_filesystem('/dev/md127')


if __name__ == '__main__':
    unittest.main()
