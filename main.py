"""
TherapyAI companion backend - HTTP 服务入口

    python main.py --port 8001
    python -m apps.companion.console   # 终端交互
"""

import argparse
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

current_dir = Path(__file__).parent


def main():
    """独立启动 HTTP API 服务器"""
    load_dotenv(current_dir / ".env")

    # 读取 .env 之后再加载配置
    from apps.settings import load_settings

    settings = load_settings()
    parser = argparse.ArgumentParser(description="TherapyAI companion HTTP API 服务器")
    parser.add_argument("--host", default=settings.host, help="服务器主机地址")
    parser.add_argument("--port", type=int, default=settings.port, help="服务器端口")
    parser.add_argument("--reload", action="store_true", help="开发模式自动重载")
    args = parser.parse_args()

    print(f"🌐 HTTP API 服务器: http://{args.host}:{args.port}")
    uvicorn.run("apps.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
