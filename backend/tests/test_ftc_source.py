"""
FtcSourceClient 테스트 (httpx.MockTransport)
"""

import httpx

from bizreg.services.ftc_source import DEFAULT_CITY_CODES, FtcSourceClient

DOMESTIC_URL = "https://www.ftc.go.kr/www/downloadBizCommOpenList.do"
OVERSEAS_URL = "https://www.ftc.go.kr/www/downloadBizOutnatn.do?key=255"


def source_client(handler, city_codes=None) -> FtcSourceClient:
    return FtcSourceClient(
        httpx.Client(transport=httpx.MockTransport(handler)),
        domestic_url=DOMESTIC_URL,
        overseas_url=OVERSEAS_URL,
        city_codes=city_codes,
    )


class TestDomesticDownload:
    """국내사업자 CSV 다운로드"""

    def test_city_name_is_sent_as_code(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"csv-bytes")

        data = source_client(handler).download_domestic("서울특별시", "강남구")

        assert data == b"csv-bytes"
        params = requests[0].url.params
        assert params["searchInst1"] == "6110000"
        assert params["searchInst2"] == "강남구"
        assert "Mozilla" in requests[0].headers["User-Agent"]

    def test_all_districts_omits_district_param(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"x")

        source_client(handler).download_domestic("경기도", "전체")

        assert "searchInst2" not in requests[0].url.params

    def test_unknown_city_returns_none_without_request(self):
        def handler(request):
            raise AssertionError("should not be called")

        assert source_client(handler).download_domestic("아틀란티스") is None

    def test_caller_supplied_city_codes(self):
        def handler(request):
            assert request.url.params["searchInst1"] == "42"
            return httpx.Response(200, content=b"x")

        assert source_client(handler, city_codes={"테스트시": "42"}).download_domestic("테스트시") == b"x"

    def test_http_error_returns_none(self):
        def handler(request):
            return httpx.Response(500, content=b"error")

        assert source_client(handler).download_domestic("서울특별시") is None

    def test_connection_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        assert source_client(handler).download_domestic("서울특별시") is None


class TestOverseasDownload:
    """국외사업자 스프레드시트 다운로드"""

    def test_downloads_with_browser_headers(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"xlsx-bytes")

        assert source_client(handler).download_overseas() == b"xlsx-bytes"
        assert requests[0].headers["Referer"] == "https://www.ftc.go.kr/"
        assert requests[0].url.params["key"] == "255"

    def test_empty_body_returns_none(self):
        def handler(request):
            return httpx.Response(200, content=b"")

        assert source_client(handler).download_overseas() is None


def test_default_city_codes_include_overseas():
    assert DEFAULT_CITY_CODES["국외사업자"] == "9990000"
    assert DEFAULT_CITY_CODES["세종특별자치시"] == "5690000"
    assert len(DEFAULT_CITY_CODES) == 18
