"""控制接口模块"""

from .control import ControlServer, create_control_app

__all__ = ['ControlServer', 'create_control_app']
