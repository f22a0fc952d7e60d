"""文件目标存储

目标定义来自YAML文件（每次 list_targets 重新读取，外部编辑即时生效），
状态与最后检查时间持久化到JSON状态文件，检查日志以JSON Lines追加写入。
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any

import yaml

from .base import TargetStore, build_target
from ..models.target import MonitoredTarget, TargetStatus
from ..utils.exceptions import StoreError, ErrorCode
from ..utils.log_manager import get_logger


class FileTargetStore(TargetStore):
    """基于本地文件的目标存储"""

    def __init__(self, targets_file: str, state_file: str,
                 check_log_file: Optional[str] = None):
        """
        初始化文件目标存储

        Args:
            targets_file: 目标定义YAML文件
            state_file: 状态持久化JSON文件
            check_log_file: 检查日志文件，为None时不记录
        """
        self.targets_file = targets_file
        self.state_file = state_file
        self.check_log_file = check_log_file
        self.states: Dict[str, Dict[str, Any]] = {}
        self.known_targets: Dict[str, MonitoredTarget] = {}
        self.logger = get_logger('store.file')

        self._load_state()

    def _read_definitions(self) -> Dict[str, Dict[str, Any]]:
        try:
            with open(self.targets_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise StoreError(f"目标文件不存在: {self.targets_file}", cause=e)
        except (OSError, yaml.YAMLError) as e:
            raise StoreError(f"读取目标文件失败: {e}", cause=e)

        targets = data.get('targets', {}) if isinstance(data, dict) else None
        if not isinstance(targets, dict):
            raise StoreError(f"目标文件格式错误，targets 必须是字典: {self.targets_file}")
        return targets

    async def list_targets(self) -> List[MonitoredTarget]:
        definitions = self._read_definitions()
        targets = []

        for target_id, definition in definitions.items():
            target_id = str(target_id)
            if not isinstance(definition, dict) or not definition.get('url'):
                self.logger.error(f"目标 {target_id} 缺少url，已忽略")
                continue

            state = self.states.get(target_id, {})
            targets.append(build_target(
                target_id, definition,
                status=self._parse_status(target_id, state),
                last_checked=_parse_time(state.get('last_checked'))
            ))

        self.known_targets = {t.target_id: t for t in targets}
        self._prune_states()
        return targets

    def _parse_status(self, target_id: str, state: Dict[str, Any]) -> TargetStatus:
        """无法识别的持久化状态按 PENDING 处理"""
        value = state.get('status', TargetStatus.PENDING.value)
        try:
            return TargetStatus(value)
        except ValueError:
            self.logger.warning(f"目标 {target_id} 的持久化状态无法识别: {value!r}，按 PENDING 处理")
            return TargetStatus.PENDING

    def _prune_states(self):
        """丢弃已从目标文件中删除的目标状态，下次写盘时生效"""
        stale = [target_id for target_id in self.states if target_id not in self.known_targets]
        for target_id in stale:
            del self.states[target_id]
        if stale:
            self.logger.info(f"清理了 {len(stale)} 个已删除目标的状态: {stale}")

    def _require_known(self, target_id: str):
        if target_id not in self.known_targets:
            raise StoreError(f"目标不存在: {target_id}", ErrorCode.TARGET_NOT_FOUND,
                             target_id=target_id)

    async def get_status(self, target_id: str) -> TargetStatus:
        self._require_known(target_id)
        return self._parse_status(target_id, self.states.get(target_id, {}))

    async def record_check(self, target_id: str, status_code: int, latency_ms: float):
        self._require_known(target_id)
        if not self.check_log_file:
            return

        record = {
            'target_id': target_id,
            'status_code': status_code,
            'latency_ms': round(latency_ms, 3),
            'created_at': datetime.now().isoformat()
        }
        try:
            Path(self.check_log_file).parent.mkdir(parents=True, exist_ok=True)
            with open(self.check_log_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(record, ensure_ascii=False) + '\n')
        except OSError as e:
            raise StoreError(f"写入检查日志失败: {e}", ErrorCode.STORE_PERSISTENCE_ERROR,
                             target_id=target_id, cause=e)

    async def update_status(self, target_id: str, new_status: TargetStatus,
                            checked_at: datetime):
        self._require_known(target_id)
        previous = self.states.get(target_id)
        self.states[target_id] = {
            'status': new_status.value,
            'last_checked': checked_at.isoformat()
        }
        try:
            self._save_state()
        except OSError as e:
            # 写盘失败时回滚内存状态，保证状态与时间戳同进同退
            if previous is None:
                self.states.pop(target_id, None)
            else:
                self.states[target_id] = previous
            raise StoreError(f"保存状态失败: {e}", ErrorCode.STORE_PERSISTENCE_ERROR,
                             target_id=target_id, cause=e)

    def _save_state(self):
        """原子地写入状态文件"""
        Path(self.state_file).parent.mkdir(parents=True, exist_ok=True)
        state_data = {
            'targets': self.states,
            'last_updated': datetime.now().isoformat()
        }
        tmp_file = f"{self.state_file}.tmp"
        with open(tmp_file, 'w', encoding='utf-8') as f:
            json.dump(state_data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_file, self.state_file)

    def _load_state(self):
        if not os.path.exists(self.state_file):
            return

        try:
            with open(self.state_file, 'r', encoding='utf-8') as f:
                state_data = json.load(f)
            states = state_data.get('targets') if isinstance(state_data, dict) else None
            if not isinstance(states, dict):
                raise ValueError("状态文件格式错误，targets 必须是字典")
            self.states = {
                str(target_id): state for target_id, state in states.items()
                if isinstance(state, dict)
            }
            self.logger.info(f"从 {self.state_file} 加载了 {len(self.states)} 个目标的状态")
        except (OSError, ValueError) as e:
            self.logger.error(f"加载状态失败，按初始状态启动: {e}")
            self.states = {}

    def read_check_log(self, target_id: Optional[str] = None,
                       limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """读取检查日志（按写入顺序），limit 取最近的若干条"""
        if not self.check_log_file or not os.path.exists(self.check_log_file):
            return []

        records = []
        with open(self.check_log_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                if target_id is None or record['target_id'] == target_id:
                    records.append(record)

        if limit:
            records = records[-limit:]
        return records


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
