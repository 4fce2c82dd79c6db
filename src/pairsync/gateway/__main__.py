"""开发网关入口 -- python -m pairsync.gateway

环境变量:
    PAIRSYNC_GATEWAY_HOST: 监听地址（默认 127.0.0.1）
    PAIRSYNC_GATEWAY_PORT: 监听端口（默认 8000）
"""

import os

import uvicorn


def main() -> None:
    host = os.environ.get("PAIRSYNC_GATEWAY_HOST", "127.0.0.1")
    port = int(os.environ.get("PAIRSYNC_GATEWAY_PORT", "8000"))
    uvicorn.run("pairsync.gateway.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
