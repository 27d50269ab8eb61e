"""テキスト処理ユーティリティ"""

import hashlib
import re
from typing import Optional


def normalize_text(text: Optional[str]) -> Optional[str]:
    """
    テキストを正規化

    - 前後の空白を除去
    - 連続する空白を1つに
    - 全角スペースを半角スペースに変換
    """
    if not text:
        return None

    text = text.replace("　", " ")
    text = re.sub(r"\s+", " ", text)
    text = text.strip()

    return text if text else None


def normalize_address(address: Optional[str]) -> str:
    """
    住所を重複排除キー用に正規化（空白整形 + casefold）

    Args:
        address: 住所文字列

    Returns:
        str: 正規化された住所（空の場合は ""）
    """
    normalized = normalize_text(address)
    return normalized.casefold() if normalized else ""


def address_key(value: str) -> str:
    """
    正規化済み文字列から安定したドキュメントIDを生成

    Firestoreのドキュメントパスに使えない文字を避けるためSHA-1を使う
    """
    return hashlib.sha1(normalize_address(value).encode("utf-8")).hexdigest()


def format_coordinates(latitude: float, longitude: float) -> str:
    """座標を "lat, lng"（小数点以下6桁）の文字列にする"""
    return f"{latitude:.6f}, {longitude:.6f}"


def matches_query(query: str, *fields: Optional[str]) -> bool:
    """
    検索クエリがフィールドのいずれかに一致するか判定

    クエリを空白で分割し、すべての語がフィールド（連結）に
    部分一致すれば True（"main st" は "100 Main Street" に一致）
    """
    tokens = normalize_address(query).split(" ")
    tokens = [token for token in tokens if token]
    if not tokens:
        return False

    haystack = " ".join(normalize_address(field) for field in fields if field)
    return all(token in haystack for token in tokens)


# URLのクエリに含まれる認証情報（Google: key / signature、Mapbox: access_token）
_SECRET_PARAM_PATTERN = re.compile(r"(?i)\b(key|access_token|signature)=[^&\s'\"]+")


def redact_secrets(text: str) -> str:
    """
    ログ・例外メッセージ中のURLから認証情報を伏せる

    >>> redact_secrets("GET /x.json?access_token=pk.abc&limit=1")
    'GET /x.json?access_token=***&limit=1'
    """
    return _SECRET_PARAM_PATTERN.sub(r"\1=***", text)
