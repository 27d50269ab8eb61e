"""最近使った場所・お気に入りのドメインモデル"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from ...geocoding.domain.models import Coordinates, DetailedAddress, Location
from ....shared.utils.datetime_utils import now_utc, to_iso8601, to_utc


class FavoriteIcon(str, Enum):
    """お気に入りのアイコン種別"""

    HOME = "home"
    OFFICE = "office"
    GYM = "gym"
    STORE = "store"
    SCHOOL = "school"
    PIN = "pin"


# 名前に含まれるキーワード → アイコン（先頭から順に判定）
ICON_KEYWORDS: list[tuple[FavoriteIcon, tuple[str, ...]]] = [
    (FavoriteIcon.HOME, ("home", "house")),
    (FavoriteIcon.OFFICE, ("work", "office", "job")),
    (FavoriteIcon.GYM, ("gym", "fitness")),
    (FavoriteIcon.STORE, ("store", "shop", "market")),
    (FavoriteIcon.SCHOOL, ("school", "university", "college")),
]


def icon_for_name(name: str) -> FavoriteIcon:
    """
    お気に入り名からアイコンを推定

    >>> icon_for_name("My Office")
    <FavoriteIcon.OFFICE: 'office'>
    """
    lowered = name.lower()
    for icon, keywords in ICON_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return icon
    return FavoriteIcon.PIN


def location_to_record(location: Location) -> dict[str, Any]:
    """Location を保存用の辞書（snake_case）に変換"""
    coordinates = location.coordinates
    detailed = location.detailed_address
    return {
        "address": location.address,
        "street_address": detailed.street,
        "city": detailed.city,
        "state": detailed.state,
        "zip_code": detailed.zip_code,
        "lat": coordinates.lat if coordinates else None,
        "lng": coordinates.lng if coordinates else None,
        "place_id": location.place_id,
    }


def location_from_record(data: dict[str, Any]) -> Location:
    """保存用の辞書から Location を復元"""
    lat = data.get("lat")
    lng = data.get("lng")
    coordinates = (
        Coordinates(lat=float(lat), lng=float(lng))
        if lat is not None and lng is not None
        else None
    )
    return Location(
        address=data["address"],
        coordinates=coordinates,
        detailed_address=DetailedAddress(
            city=data.get("city"),
            state=data.get("state"),
            street=data.get("street_address"),
            zip_code=data.get("zip_code"),
        ),
        place_id=data.get("place_id"),
    )


@dataclass
class RecentLocationEntry:
    """最近使った場所（正規化した住所ごとに1件）"""

    id: str
    location: Location
    usage_count: int = 1
    last_used_at: datetime = field(default_factory=now_utc)

    @property
    def address(self) -> str:
        return self.location.address

    def sort_key(self) -> tuple[int, float]:
        """利用回数の降順 → 最終利用日時の降順"""
        return (-self.usage_count, -to_utc(self.last_used_at).timestamp())

    def to_firestore_dict(self) -> dict[str, Any]:
        """Firestore保存用の辞書に変換"""
        return {
            "id": self.id,
            **location_to_record(self.location),
            "normalized_address": self.location.normalized_address,
            "usage_count": self.usage_count,
            "last_used_at": self.last_used_at,
        }

    @classmethod
    def from_firestore_dict(cls, data: dict[str, Any]) -> "RecentLocationEntry":
        """Firestoreのデータから生成"""
        return cls(
            id=data["id"],
            location=location_from_record(data),
            usage_count=int(data.get("usage_count", 1)),
            last_used_at=to_utc(data.get("last_used_at") or now_utc()),
        )

    def to_api_dict(self) -> dict[str, Any]:
        """REST APIレスポンス用の辞書に変換"""
        return {
            "id": self.id,
            **self.location.to_api_dict(),
            "usageCount": self.usage_count,
            "lastUsed": to_iso8601(self.last_used_at),
        }


@dataclass
class FavoriteLocationEntry:
    """ユーザーが名前を付けて保存した場所"""

    id: str
    name: str
    location: Location
    icon: FavoriteIcon = FavoriteIcon.PIN
    created_at: datetime = field(default_factory=now_utc)

    @property
    def address(self) -> str:
        return self.location.address

    @property
    def label(self) -> str:
        """表示用ラベル（例: "Work (100 Main St)"）"""
        return f"{self.name} ({self.location.address})"

    def to_firestore_dict(self) -> dict[str, Any]:
        """Firestore保存用の辞書に変換"""
        return {
            "id": self.id,
            "name": self.name,
            "normalized_name": self.name.strip().casefold(),
            **location_to_record(self.location),
            "icon": self.icon.value,
            "created_at": self.created_at,
        }

    @classmethod
    def from_firestore_dict(cls, data: dict[str, Any]) -> "FavoriteLocationEntry":
        """Firestoreのデータから生成"""
        try:
            icon = FavoriteIcon(data.get("icon", FavoriteIcon.PIN.value))
        except ValueError:
            icon = FavoriteIcon.PIN
        return cls(
            id=data["id"],
            name=data["name"],
            location=location_from_record(data),
            icon=icon,
            created_at=to_utc(data.get("created_at") or now_utc()),
        )

    def to_api_dict(self) -> dict[str, Any]:
        """REST APIレスポンス用の辞書に変換"""
        return {
            "id": self.id,
            "name": self.name,
            **self.location.to_api_dict(),
            "icon": self.icon.value,
            "createdAt": to_iso8601(self.created_at),
        }


@dataclass
class LocationSearchResult:
    """履歴検索の結果"""

    recent: list[RecentLocationEntry] = field(default_factory=list)
    favorite: list[FavoriteLocationEntry] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.recent and not self.favorite

    def to_api_dict(self) -> dict[str, Any]:
        return {
            "recent": [entry.to_api_dict() for entry in self.recent],
            "favorite": [entry.to_api_dict() for entry in self.favorite],
        }


def rank_recents(
    entries: Iterable[RecentLocationEntry], limit: Optional[int] = None
) -> list[RecentLocationEntry]:
    """最近使った場所を表示順（利用回数 → 最終利用日時）に並べる"""
    ranked = sorted(entries, key=lambda entry: entry.sort_key())
    return ranked[:limit] if limit is not None else ranked
