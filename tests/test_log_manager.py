"""
日志管理器测试模块
"""

import logging
import os
import tempfile
import pytest

from api_sentinel.utils.log_manager import (
    LogManager, LogLevel, ROOT_LOGGER_NAME, get_logger, configure_logging
)


class TestLogManager:
    """日志管理器测试类"""

    def setup_method(self):
        """每个测试方法前重置单例"""
        LogManager._instance = None
        LogManager._initialized = False

    def teardown_method(self):
        LogManager().configure({'log_level': 'INFO', 'enable_file': False,
                                'enable_console': True})

    def test_singleton_pattern(self):
        assert LogManager() is LogManager()

    def test_default_configuration(self):
        manager = LogManager()

        assert manager._log_level == LogLevel.INFO
        assert manager._log_file is None
        assert manager._enable_console is True
        assert manager._enable_file is False
        root = logging.getLogger(ROOT_LOGGER_NAME)
        assert root.propagate is False
        assert len(root.handlers) == 1

    def test_configure_log_level(self):
        manager = LogManager()

        manager.configure({'log_level': 'debug'})
        assert manager._log_level == LogLevel.DEBUG
        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.DEBUG

        with pytest.raises(ValueError, match="无效的日志级别"):
            manager.configure({'log_level': 'INVALID'})

    def test_get_logger_prefix(self):
        """测试子记录器挂在根记录器下"""
        assert get_logger('coordinator').name == 'api_sentinel.coordinator'
        assert get_logger('api_sentinel.store').name == 'api_sentinel.store'
        assert get_logger(ROOT_LOGGER_NAME).name == ROOT_LOGGER_NAME

    def test_file_logging(self):
        """测试文件输出"""
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = os.path.join(temp_dir, 'logs', 'sentinel.log')
            manager = LogManager()
            manager.configure({'log_file': log_file, 'enable_console': False})

            get_logger('test').warning("写入文件的日志")
            manager.cleanup()

            with open(log_file, 'r', encoding='utf-8') as f:
                content = f.read()
            assert "写入文件的日志" in content
            assert manager.get_log_stats()['file_logging_enabled'] is True

            manager.configure({'enable_file': False})

    def test_reconfigure_does_not_duplicate_handlers(self):
        manager = LogManager()
        for _ in range(3):
            configure_logging({'log_level': 'INFO'})

        assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1

    def test_set_level(self):
        manager = LogManager()
        manager.set_level(LogLevel.ERROR)

        assert manager.get_log_stats()['log_level'] == 'ERROR'
