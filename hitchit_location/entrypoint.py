"""CLIエントリーポイント"""
import argparse
import asyncio
import json
import sys
from typing import Any

from .infrastructure.config.settings import Settings
from .infrastructure.container import LocationServiceContainer
from .shared.logging.config import get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """コマンドライン引数パーサーを生成"""
    parser = argparse.ArgumentParser(description="HitchIt 位置情報ツール")

    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="環境変数ファイルのパス（デフォルト: .env）",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="ログレベル",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    geocode_parser = subparsers.add_parser("geocode", help="住所から座標を取得")
    geocode_parser.add_argument("address", type=str, help="住所")

    reverse_parser = subparsers.add_parser("reverse", help="座標から住所を取得")
    reverse_parser.add_argument("lat", type=float, help="緯度")
    reverse_parser.add_argument("lng", type=float, help="経度")

    search_parser = subparsers.add_parser("search", help="履歴とライブ候補をまとめて検索")
    search_parser.add_argument("query", type=str, help="検索文字列")
    search_parser.add_argument("--user-id", type=str, required=True, help="ユーザーID")

    return parser


async def run_command(args: argparse.Namespace, container: LocationServiceContainer) -> Any:
    """
    サブコマンドを実行し、出力するJSON互換の値を返す

    Args:
        args: 解析済みの引数
        container: 依存関係コンテナ
    """
    if args.command == "geocode":
        result = await container.fallback_resolver.forward(args.address)
        return result.to_dict()

    if args.command == "reverse":
        result = await container.fallback_resolver.reverse(args.lat, args.lng)
        return result.to_dict()

    resolver = container.create_resolver(args.user_id)
    await resolver.open()
    resolver.update_query(args.query)
    await resolver.settle()
    return {
        "state": resolver.state.value,
        "results": [item.to_dict() for item in resolver.results],
    }


def main() -> int:
    """
    メインエントリーポイント

    Returns:
        int: 終了コード（0: 成功, 1: 失敗）
    """
    args = build_parser().parse_args()

    try:
        settings = Settings(_env_file=args.env_file)
        if args.log_level:
            settings.log_level = args.log_level

        setup_logging(
            level=settings.log_level,
            enable_cloud_logging=settings.gcp_logging_enabled,
            project_id=settings.gcp_project_id,
            log_name=settings.project_name,
        )
        logger.info(f"Running command: {args.command} (environment={settings.environment})")

        container = LocationServiceContainer(settings)
        output = asyncio.run(run_command(args, container))

        print(json.dumps(output, ensure_ascii=False, indent=2))
        return 0

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130  # SIGINT
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
