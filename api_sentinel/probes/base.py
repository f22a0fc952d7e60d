"""探测执行器基类"""

from abc import ABC, abstractmethod

from ..models.target import MonitoredTarget, CheckResult
from ..utils.log_manager import get_logger


class BaseProbe(ABC):
    """探测执行器抽象基类

    子类必须把所有失败折叠进返回的 CheckResult，不得向外抛出异常。
    """

    def __init__(self, timeout: float = 10.0):
        """
        初始化探测执行器

        Args:
            timeout: 单次探测超时时间（秒）
        """
        if timeout <= 0:
            raise ValueError("探测超时时间必须大于0")
        self.timeout = timeout
        self.probe_type = self.__class__.__name__.replace('Probe', '').lower()
        self.logger = get_logger(f'probe.{self.probe_type}')

    @abstractmethod
    async def execute(self, target: MonitoredTarget) -> CheckResult:
        """
        对单个目标执行一次探测

        Args:
            target: 监控目标

        Returns:
            CheckResult: 探测结果
        """
        pass

    def get_timeout(self) -> float:
        """
        获取超时时间配置

        Returns:
            float: 超时时间（秒）
        """
        return self.timeout
