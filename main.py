#!/usr/bin/env python3
"""API Sentinel 调度服务启动脚本"""

from api_sentinel.main import run

if __name__ == "__main__":
    run()
