"""ロギング設定"""
import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 通信ログが多いライブラリ（ジオコーディングSDK・GCPクライアント）
QUIET_LOGGERS = ("urllib3", "google", "googlemaps", "uvicorn.access")

_logger_configured = False


def setup_logging(
    level: str = "INFO",
    enable_cloud_logging: bool = False,
    project_id: Optional[str] = None,
    log_name: str = "hitchit-location",
    force: bool = False,
) -> None:
    """
    ロギングを設定

    APIサーバー・CLIの起動時に1回だけ呼ぶ。2回目以降は force=True の場合のみ再設定する

    Args:
        level: ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_cloud_logging: Cloud Loggingを有効にするか
        project_id: GCPプロジェクトID (Cloud Logging有効時に必要)
        log_name: Cloud Logging上のログ名
        force: 設定済みでも再設定するか
    """
    global _logger_configured

    if _logger_configured and not force:
        return

    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(console_handler)

    # Cloud Run上では構造化ログとして送る
    if enable_cloud_logging:
        try:
            from google.cloud import logging as cloud_logging

            client = cloud_logging.Client(project=project_id)
            cloud_handler = cloud_logging.handlers.CloudLoggingHandler(client, name=log_name)
            cloud_handler.setLevel(log_level)
            root_logger.addHandler(cloud_handler)

            logging.info(f"Cloud Logging enabled: {log_name}")
        except Exception as e:
            logging.warning(f"Failed to enable Cloud Logging: {e}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    _logger_configured = True
    logging.info(f"Logging configured with level: {level}")


def get_logger(name: str) -> logging.Logger:
    """
    指定名のロガーを取得

    Args:
        name: ロガー名（通常は__name__を指定）

    Returns:
        ロガーインスタンス
    """
    return logging.getLogger(name)
