"""HTTP端点探测执行器"""

import asyncio
import time
from typing import Optional, Any

import aiohttp

from .base import BaseProbe
from ..models.target import MonitoredTarget, CheckResult, TargetStatus, OFFLINE_STATUS_CODE

SUPPORTED_METHODS = ('GET', 'POST', 'PUT', 'DELETE', 'HEAD', 'OPTIONS', 'PATCH')


class HTTPProbe(BaseProbe):
    """HTTP探测执行器

    收到响应时原样记录状态码，状态码落在期望范围内判为ONLINE，
    否则判为OFFLINE；连接失败、DNS失败或超时记录为500并判为OFFLINE。
    """

    def __init__(self, timeout: float = 10.0, offline_status_code: int = OFFLINE_STATUS_CODE,
                 user_agent: str = 'api-sentinel/1.0'):
        """
        初始化HTTP探测执行器

        Args:
            timeout: 单次探测超时时间（秒）
            offline_status_code: 传输层失败时记录的状态码
            user_agent: 请求使用的User-Agent
        """
        super().__init__(timeout)
        self.offline_status_code = offline_status_code
        self.headers = {'User-Agent': user_agent}

    @staticmethod
    def is_status_expected(status_code: int, expected_status: Optional[Any] = None) -> bool:
        """
        检查状态码是否符合期望

        Args:
            status_code: HTTP状态码
            expected_status: 期望的状态码或状态码列表，为None时接受200-399

        Returns:
            bool: 是否符合期望
        """
        if expected_status is None:
            return 200 <= status_code < 400
        if isinstance(expected_status, (list, tuple, set)):
            return status_code in expected_status
        return status_code == expected_status

    async def execute(self, target: MonitoredTarget) -> CheckResult:
        """
        执行HTTP探测

        Args:
            target: 监控目标

        Returns:
            CheckResult: 探测结果
        """
        start_time = time.monotonic()
        status_code = self.offline_status_code
        status = TargetStatus.OFFLINE
        error_message = None

        try:
            method = (target.method or 'GET').upper()
            timeout = aiohttp.ClientTimeout(total=self.get_timeout())

            async with aiohttp.ClientSession(timeout=timeout, headers=self.headers) as session:
                async with session.request(method, target.url) as response:
                    status_code = response.status
                    if self.is_status_expected(status_code, target.expected_status):
                        status = TargetStatus.ONLINE
                    else:
                        error_message = f"HTTP状态码不符合期望: {status_code}"

        except asyncio.TimeoutError:
            error_message = f"HTTP请求超时 ({self.get_timeout()}s)"
        except aiohttp.ClientError as e:
            error_message = f"HTTP客户端错误: {e}"
        except Exception as e:
            error_message = f"HTTP探测异常: {e}"

        latency_ms = (time.monotonic() - start_time) * 1000

        if error_message:
            self.logger.debug(f"目标 {target.target_id} 探测失败: {error_message}")

        return CheckResult(
            target_id=target.target_id,
            status_code=status_code,
            latency_ms=latency_ms,
            status=status,
            error_message=error_message
        )
