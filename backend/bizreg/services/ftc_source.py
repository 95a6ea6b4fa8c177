"""
공정거래위원회 통신판매사업자 원본 파일 다운로드

- 국내사업자: 시/도 + 구/군 단위 CSV (EUC-KR)
- 국외사업자: 전체 목록 스프레드시트

Downloads return raw bytes, or None when the file is unavailable.
The parser decides whether the bytes are usable.
"""

import logging
from typing import Mapping, Optional

import httpx

logger = logging.getLogger(__name__)


OVERSEAS_CITY = "국외사업자"
ALL_DISTRICTS = "전체"

# 시/도 → 공정위 기관 코드
DEFAULT_CITY_CODES: dict[str, str] = {
    "서울특별시": "6110000",
    "부산광역시": "6260000",
    "대구광역시": "6270000",
    "인천광역시": "6280000",
    "광주광역시": "6290000",
    "대전광역시": "6300000",
    "울산광역시": "6310000",
    "경기도": "6410000",
    "충청북도": "6430000",
    "충청남도": "6440000",
    "전라남도": "6460000",
    "경상북도": "6470000",
    "경상남도": "6480000",
    "제주특별자치도": "6500000",
    "강원특별자치도": "6530000",
    "전북특별자치도": "6540000",
    "세종특별자치시": "5690000",
    OVERSEAS_CITY: "9990000",
}

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/90.0.4430.212 Safari/537.36"
    ),
    "Referer": "https://www.ftc.go.kr/",
}


class FtcSourceClient:
    """공정위 원본 파일 다운로드 클라이언트"""

    def __init__(
        self,
        http_client: httpx.Client,
        domestic_url: str,
        overseas_url: str,
        city_codes: Optional[Mapping[str, str]] = None,
    ):
        self._http = http_client
        self._domestic_url = domestic_url
        self._overseas_url = overseas_url
        self._city_codes = dict(city_codes if city_codes is not None else DEFAULT_CITY_CODES)

    @classmethod
    def from_settings(
        cls,
        http_client: httpx.Client,
        settings,
        city_codes: Optional[Mapping[str, str]] = None,
    ) -> "FtcSourceClient":
        return cls(
            http_client,
            domestic_url=settings.DOMESTIC_SOURCE_URL,
            overseas_url=settings.OVERSEAS_SOURCE_URL,
            city_codes=city_codes,
        )

    def city_code(self, city: str) -> Optional[str]:
        return self._city_codes.get(city)

    def download_domestic(self, city: str, district: Optional[str] = None) -> Optional[bytes]:
        """
        국내사업자 CSV 다운로드

        Args:
            city: 시/도 이름 (예: "서울특별시")
            district: 구/군 이름, 없거나 "전체"면 시/도 전체

        Returns:
            CSV bytes 또는 None (다운로드 실패)
        """
        city_code = self.city_code(city)
        if city_code is None:
            logger.error(f"[FtcSource] Unknown city: {city}")
            return None

        params = {"searchInst1": city_code}
        if district and district != ALL_DISTRICTS:
            params["searchInst2"] = district

        logger.info(f"[FtcSource] Downloading domestic CSV city={city}({city_code}) district={district or ALL_DISTRICTS}")
        return self._fetch(self._domestic_url, params=params)

    def download_overseas(self) -> Optional[bytes]:
        """국외사업자 스프레드시트 다운로드"""
        logger.info(f"[FtcSource] Downloading overseas workbook: {self._overseas_url}")
        return self._fetch(self._overseas_url)

    def _fetch(self, url: str, params: Optional[dict] = None) -> Optional[bytes]:
        try:
            response = self._http.get(url, params=params, headers=BROWSER_HEADERS)
        except httpx.HTTPError as e:
            logger.error(f"[FtcSource] Download failed: {e}")
            return None

        if response.status_code != 200 or not response.content:
            logger.error(f"[FtcSource] Download failed: HTTP {response.status_code}, {len(response.content)} bytes")
            return None

        logger.info(f"[FtcSource] Downloaded {len(response.content)} bytes")
        return response.content
