"""日時関連ユーティリティ（保存・APIレスポンスはすべてUTC）"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """現在のUTC時間を取得"""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    datetimeをUTCに変換

    Firestoreから読んだ値はUTCのaware datetimeだが、
    テストやエミュレータ経由のnaive datetimeはUTCとして扱う
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso8601(dt: datetime) -> str:
    """
    REST APIレスポンス用のISO 8601文字列（例: "2024-01-01T12:00:00Z"）
    """
    return to_utc(dt).isoformat().replace("+00:00", "Z")
