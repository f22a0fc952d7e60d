"""Webhook通知渠道"""

import asyncio
from typing import Dict, Any, Optional
from urllib.parse import urlparse

import aiohttp

from .base import BaseNotificationSink
from ..models.target import TransitionEvent
from ..utils.exceptions import NotificationConfigError, NotificationSendError
from ..utils.log_manager import get_logger

WEBHOOK_EVENT_NAME = 'endpoint_status_change'


class WebhookNotificationSink(BaseNotificationSink):
    """通过HTTP请求把状态变化推送到外部Webhook"""

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        初始化Webhook通知渠道

        Args:
            name: 渠道名称
            config: 渠道配置（url, method, headers, timeout, max_retries, retry_delay, retry_backoff）

        Raises:
            NotificationConfigError: 配置无效
        """
        super().__init__(name, config)
        self.logger = get_logger(f'notification.webhook.{self.name}')

        # 重试配置
        self.max_retries = config.get('max_retries', 2)
        self.retry_delay = config.get('retry_delay', 1.0)  # 秒
        self.retry_backoff = config.get('retry_backoff', 2.0)  # 指数退避倍数

        # HTTP配置
        self.url = config.get('url', '')
        self.method = str(config.get('method', 'POST')).upper()
        self.headers = config.get('headers', {})

        if not self.validate_config():
            raise NotificationConfigError(f"Webhook通知渠道配置无效: {name}", sink_name=name)

    def validate_config(self) -> bool:
        if not self.url:
            self.logger.error(f"Webhook通知渠道 {self.name} 缺少URL配置")
            return False

        parsed_url = urlparse(self.url)
        if parsed_url.scheme not in ('http', 'https') or not parsed_url.netloc:
            self.logger.error(f"Webhook通知渠道 {self.name} URL格式无效: {self.url}")
            return False

        valid_methods = ['POST', 'PUT', 'PATCH']
        if self.method not in valid_methods:
            self.logger.error(
                f"Webhook通知渠道 {self.name} 不支持的HTTP方法: {self.method}, "
                f"支持的方法: {valid_methods}")
            return False

        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            self.logger.error(f"Webhook通知渠道 {self.name} 最大重试次数不能为负数")
            return False

        if self.retry_delay < 0:
            self.logger.error(f"Webhook通知渠道 {self.name} 重试延迟不能为负数")
            return False

        return True

    def build_payload(self, event: TransitionEvent) -> Dict[str, Any]:
        """构造Webhook请求体"""
        return {
            'event': WEBHOOK_EVENT_NAME,
            'data': event.to_dict()
        }

    async def notify(self, event: TransitionEvent) -> bool:
        """
        发送状态变化事件，失败时按指数退避重试

        Returns:
            bool: 发送是否成功

        Raises:
            NotificationSendError: 所有尝试都抛出网络异常
        """
        self.logger.info(
            f"开始推送Webhook: 目标={event.target_id}, "
            f"{event.old_status.value} -> {event.new_status.value}")

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries + 1):
            try:
                if await self._send_request(event):
                    if attempt > 0:
                        self.logger.info(f"Webhook通知渠道 {self.name} 重试第 {attempt} 次后发送成功")
                    return True
                last_error = None
            except NotificationSendError as e:
                last_error = e
                self.logger.warning(
                    f"Webhook通知渠道 {self.name} 发送失败 "
                    f"(尝试 {attempt + 1}/{self.max_retries + 1}): {e}")

            if attempt < self.max_retries:
                delay = self.retry_delay * (self.retry_backoff ** attempt)
                self.logger.debug(f"等待 {delay:.2f} 秒后重试")
                await asyncio.sleep(delay)

        self.logger.error(f"Webhook通知渠道 {self.name} 所有重试均失败，放弃发送")
        if last_error is not None:
            raise NotificationSendError(f"Webhook发送失败: {last_error}", sink_name=self.name,
                                        cause=last_error)
        return False

    async def _send_request(self, event: TransitionEvent) -> bool:
        """
        发送一次HTTP请求

        Returns:
            bool: 是否收到2xx响应

        Raises:
            NotificationSendError: 网络错误或超时
        """
        timeout = aiohttp.ClientTimeout(total=self.get_timeout())

        async with aiohttp.ClientSession(timeout=timeout) as session:
            try:
                async with session.request(
                        method=self.method,
                        url=self.url,
                        headers=self.headers,
                        json=self.build_payload(event)
                ) as response:
                    if 200 <= response.status < 300:
                        self.logger.debug(
                            f"Webhook通知渠道 {self.name} 发送成功 (状态码: {response.status})")
                        return True

                    response_text = await response.text()
                    self.logger.warning(
                        f"Webhook通知渠道 {self.name} 收到错误响应 "
                        f"(状态码: {response.status}, 响应: {response_text[:200]})")
                    return False

            except aiohttp.ClientError as e:
                raise NotificationSendError(f"HTTP请求失败: {e}", sink_name=self.name)
            except asyncio.TimeoutError:
                raise NotificationSendError("HTTP请求超时", sink_name=self.name)

    def get_delivery_budget(self) -> float:
        """每次尝试的超时加上各次重试前的退避等待"""
        attempts = (self.max_retries + 1) * self.get_timeout()
        backoff = sum(self.retry_delay * (self.retry_backoff ** attempt)
                      for attempt in range(self.max_retries))
        return attempts + backoff

    def get_config_summary(self) -> Dict[str, Any]:
        """获取配置摘要"""
        return {
            'name': self.name,
            'type': 'webhook',
            'url': self.url,
            'method': self.method,
            'timeout': self.get_timeout(),
            'max_retries': self.max_retries,
            'retry_delay': self.retry_delay
        }
