"""ジオコーディング機能のドメインモデル"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ....shared.exceptions.errors import GeocodingError, ValidationError
from ....shared.utils.text import normalize_address, normalize_text


@dataclass(frozen=True)
class Coordinates:
    """緯度・経度"""

    lat: float  # 緯度
    lng: float  # 経度

    def __repr__(self) -> str:
        return f"Coordinates(lat={self.lat}, lng={self.lng})"

    def to_tuple(self) -> tuple[float, float]:
        """(緯度, 経度)のタプルとして返す"""
        return (self.lat, self.lng)


@dataclass(frozen=True)
class DetailedAddress:
    """住所の構成要素（市区町村と州が揃えば「完全な住所」とみなす）"""

    city: Optional[str] = None
    state: Optional[str] = None
    street: Optional[str] = None
    zip_code: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.city and self.state)


@dataclass(frozen=True)
class Location:
    """
    解決済みの地点

    coordinates が None になるのは、ジオコーディング完了前の一時状態か、
    ジオコーディングに失敗したがユーザーが住所のみで続行した場合のみ
    """

    address: str
    coordinates: Optional[Coordinates] = None
    detailed_address: DetailedAddress = field(default_factory=DetailedAddress)
    place_id: Optional[str] = None

    def __post_init__(self) -> None:
        address = normalize_text(self.address)
        if not address:
            raise ValidationError("Location address must not be empty")
        object.__setattr__(self, "address", address)

    @property
    def normalized_address(self) -> str:
        """重複排除キー（前後空白除去 + 大文字小文字無視）"""
        return normalize_address(self.address)

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None

    @property
    def is_complete(self) -> bool:
        return self.detailed_address.is_complete

    def to_api_dict(self) -> dict[str, Any]:
        """REST API（POST /locations/...）のボディ形式に変換"""
        return {
            "address": self.address,
            "streetAddress": self.detailed_address.street,
            "city": self.detailed_address.city or "",
            "state": self.detailed_address.state or "",
            "zipCode": self.detailed_address.zip_code,
            "lat": self.coordinates.lat if self.coordinates else None,
            "lng": self.coordinates.lng if self.coordinates else None,
        }


@dataclass(frozen=True)
class SearchSuggestion:
    """ライブ入力補完の候補（永続化されない。選択時のみ履歴に昇格）"""

    address: str
    provider: str
    coordinates: Optional[Coordinates] = None
    place_id: Optional[str] = None
    detailed_address: DetailedAddress = field(default_factory=DetailedAddress)

    def to_location(self) -> Location:
        return Location(
            address=self.address,
            coordinates=self.coordinates,
            detailed_address=self.detailed_address,
            place_id=self.place_id,
        )


@dataclass(frozen=True)
class GeocodeResult:
    """
    ジオコーディング結果

    verified が False の場合は全プロバイダーが失敗した縮退結果で、
    座標は信頼できない（None の場合もある）
    """

    location: Location
    verified: bool
    provider: Optional[str] = None
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload = self.location.to_api_dict()
        payload["placeId"] = self.location.place_id
        payload["verified"] = self.verified
        payload["provider"] = self.provider
        return payload


class OutcomeKind(str, Enum):
    """プロバイダー呼び出し結果の種類"""

    SUCCESS = "success"  # 成功
    RECOVERABLE = "recoverable"  # 次のプロバイダーで再試行可能
    FATAL = "fatal"  # 入力不正。他のプロバイダーでも解決できない


@dataclass(frozen=True)
class ProviderOutcome:
    """1プロバイダーへの1回の呼び出し結果"""

    kind: OutcomeKind
    provider: str
    location: Optional[Location] = None
    error: Optional[GeocodingError] = None

    @classmethod
    def success(cls, provider: str, location: Location) -> "ProviderOutcome":
        return cls(kind=OutcomeKind.SUCCESS, provider=provider, location=location)

    @classmethod
    def recoverable(cls, provider: str, error: GeocodingError) -> "ProviderOutcome":
        return cls(kind=OutcomeKind.RECOVERABLE, provider=provider, error=error)

    @classmethod
    def fatal(cls, provider: str, error: GeocodingError) -> "ProviderOutcome":
        return cls(kind=OutcomeKind.FATAL, provider=provider, error=error)
