"""Unit tests for ServiceManager."""

import unittest
from unittest.mock import Mock

from disksetup.errors import CommandError, ServiceError, ServiceRestartError
from disksetup.service_manager import ServiceManager
from disksetup.system_executor import SystemCommandExecutor


class TestServiceManager(unittest.TestCase):
    """Test cases for ServiceManager."""

    def setUp(self):
        self.executor = Mock(spec=SystemCommandExecutor)
        self.manager = ServiceManager(self.executor)

    def test_active_services_filters_and_dedupes(self):
        """Test only running services are returned, once each, in order."""
        running = {'containerd', 'kubelet'}
        self.executor.execute_systemctl_command.side_effect = \
            lambda action, units=(), extra_args=(), check=False: (units[0] in running, "", "")

        active = self.manager.active_services(['kubelet', 'sandbox', 'containerd', 'kubelet'])

        self.assertEqual(active, ['kubelet', 'containerd'])
        self.assertEqual(self.executor.execute_systemctl_command.call_count, 3)

    def test_stop_is_one_batch_call(self):
        """Test all services are stopped by a single systemctl invocation."""
        self.executor.execute_systemctl_command.return_value = (True, "", "")

        self.manager.stop(['containerd', 'kubelet'])

        self.executor.execute_systemctl_command.assert_called_once_with(
            'stop', ['containerd', 'kubelet'], check=True
        )

    def test_empty_batches_do_nothing(self):
        """Test stop and start with no services make no calls."""
        self.manager.stop([])
        self.manager.start([])
        self.executor.execute_systemctl_command.assert_not_called()

    def test_stop_failure(self):
        """Test stop failures raise ServiceError."""
        self.executor.execute_systemctl_command.side_effect = CommandError(['systemctl', 'stop'], 1)

        with self.assertRaises(ServiceError) as ctx:
            self.manager.stop(['containerd'])
        self.assertNotIsInstance(ctx.exception, ServiceRestartError)

    def test_start_failure_names_services(self):
        """Test restart failures carry the services left stopped."""
        self.executor.execute_systemctl_command.side_effect = CommandError(['systemctl', 'start'], 1)

        with self.assertRaises(ServiceRestartError) as ctx:
            self.manager.start(['containerd', 'kubelet'])
        self.assertEqual(ctx.exception.services, ['containerd', 'kubelet'])


if __name__ == '__main__':
    unittest.main()
