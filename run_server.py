#!/usr/bin/env python
"""분석 작업 API 서버 실행 스크립트

사용법:
    python run_server.py                       # 기본 설정으로 실행 (0.0.0.0:8000)
    python run_server.py --port 9000           # 포트 지정
    python run_server.py --pool-size 4         # 워커 풀 크기 지정
    python run_server.py --cache memory        # Redis 없이 메모리 캐시로 실행
"""

import argparse
import os
import sys

import uvicorn
from dotenv import load_dotenv


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Satellite analysis task server")
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="바인딩 주소 (기본: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8000")),
        help="포트 (기본: 8000)",
    )
    parser.add_argument(
        "--pool-size",
        type=int,
        default=None,
        help="워커 풀 크기 (기본: TASK_WORKER_POOL_SIZE 또는 10)",
    )
    parser.add_argument(
        "--cache",
        choices=["redis", "memory"],
        default=None,
        help="캐시 백엔드 (기본: CACHE_BACKEND 또는 redis)",
    )

    args = parser.parse_args()

    from satellite_tasks.config import Settings
    from satellite_tasks.main import create_app

    settings = Settings()
    if args.pool_size is not None:
        settings.worker_pool_size = args.pool_size
    if args.cache is not None:
        settings.cache_backend = args.cache

    try:
        uvicorn.run(create_app(settings), host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\nServer stopped.")
        sys.exit(0)


if __name__ == "__main__":
    main()
