"""启动脚本 - 用于启动 VFX.sh Admin Core 服务"""
import sys
from pathlib import Path

# 将项目根目录添加到 Python 路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn
from config.settings import settings

APP = "app.main:app"


def dev():
    """开发模式启动（自动重载）"""
    uvicorn.run(APP, host=settings.host, port=settings.port, reload=True, log_level="debug")


def start():
    """标准模式启动"""
    uvicorn.run(APP, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


def prod():
    """生产模式启动（多进程，解析缓存需要 Redis 才能在进程间共享）"""
    uvicorn.run(APP, host=settings.host, port=settings.port, workers=settings.workers, log_level="warning")


if __name__ == "__main__":
    mode = sys.argv[1] if len(sys.argv) > 1 else "start"
    {"dev": dev, "prod": prod}.get(mode, start)()
