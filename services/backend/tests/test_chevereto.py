"""Tests for Chevereto based providers."""

import json

import httpx
import pytest

from up2b.errors import AuthError, ProviderRejected
from up2b.managers.chevereto import (
    AUTH_TOKEN_EXPIRED,
    CHEVERETO_SITES,
    INVALID_OWNER,
    QUOTES,
    WRONG_CREDENTIALS,
    CheveretoManager,
    unquote,
)
from up2b.schemas import CheveretoAuthConfig

TOKEN = "a" * 40
FRESH_TOKEN = "b" * 40


def login_page(token: str = TOKEN) -> httpx.Response:
    return httpx.Response(
        200,
        text=f'<script>PF.obj.config.auth_token = "{token}";</script>',
        headers={"Set-Cookie": "PHPSESSID=abc; path=/"},
    )


def data_object(url: str, name: str, thumb: str) -> str:
    text = json.dumps({"url": url, "name": name, "thumb": {"url": thumb}}, separators=(",", ":"))
    for quoted, char in QUOTES.items():
        text = text.replace(char, quoted)
    return f"<div data-object='{text}'></div>"


def form(request: httpx.Request) -> dict[str, str]:
    if not request.headers.get("Content-Type", "").startswith("application/x-www-form-urlencoded"):
        return {}
    return dict(httpx.QueryParams(request.content.decode()).items())


class FakeSite:
    """Scripted Chevereto site."""

    def __init__(self, json_responses=None, password="secret", pages=None):
        self.json_responses = list(json_responses or [])
        self.password = password
        self.pages = pages or {}
        self.requests: list[httpx.Request] = []
        self.refreshes = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/login":
            body = form(request)
            if "login-subject" not in body:
                if "Cookie" in request.headers:
                    self.refreshes += 1
                    return login_page(FRESH_TOKEN)
                return login_page()
            if body["password"] != self.password:
                return httpx.Response(200, text=f'PF.fn.growl.expirable("{WRONG_CREDENTIALS}")')
            return httpx.Response(301, headers={"Set-Cookie": "KEEP_LOGIN=xyz; path=/"})

        if path == "/json":
            return self.json_responses.pop(0)

        return httpx.Response(200, text=self.pages[request.url.params["page"]])

    def json_bodies(self) -> list[dict[str, str]]:
        return [form(r) for r in self.requests if r.url.path == "/json" and form(r)]


def expired() -> httpx.Response:
    return httpx.Response(400, json={"error": {"message": AUTH_TOKEN_EXPIRED}})


@pytest.fixture
def auth():
    return CheveretoAuthConfig(
        username="me",
        password="secret",
        extra={"token": TOKEN, "cookie": "PHPSESSID=abc; KEEP_LOGIN=xyz"},
    )


def make_manager(site, mock_transport, auth, code="IMGSE", on_extra_updated=None):
    return CheveretoManager(code, CHEVERETO_SITES[code], auth, mock_transport(site), on_extra_updated)


class TestHelpers:
    def test_unquote(self):
        assert unquote("%7B%22a%22%3A%22b%2Fc%22%7D") == '{"a":"b/c"}'


class TestLogin:
    """Test cases for the two-step login."""

    @pytest.mark.asyncio
    async def test_login(self, mock_transport):
        site = FakeSite()
        manager = make_manager(site, mock_transport, CheveretoAuthConfig(username="me", password="secret"))

        extra = await manager.verify()

        assert extra == {"token": TOKEN, "cookie": "PHPSESSID=abc; KEEP_LOGIN=xyz"}
        login = form(site.requests[1])
        assert login == {"login-subject": "me", "password": "secret", "auth_token": TOKEN}
        assert site.requests[1].headers["Cookie"] == "PHPSESSID=abc"

    @pytest.mark.asyncio
    async def test_wrong_password(self, mock_transport):
        site = FakeSite(password="other")
        manager = make_manager(site, mock_transport, CheveretoAuthConfig(username="me", password="secret"))

        with pytest.raises(AuthError) as exc_info:
            await manager.login()
        assert exc_info.value.code == "AUTH"

    @pytest.mark.asyncio
    async def test_login_page_without_token(self, mock_transport):
        manager = make_manager(
            lambda request: httpx.Response(200, text="maintenance"),
            mock_transport,
            CheveretoAuthConfig(username="me", password="secret"),
        )
        with pytest.raises(ProviderRejected):
            await manager.login()


class TestDelete:
    """Test cases for deleting with token refresh."""

    @pytest.mark.asyncio
    async def test_delete(self, mock_transport, auth):
        site = FakeSite(json_responses=[httpx.Response(200, json={"success": {"code": 200}})])

        result = await make_manager(site, mock_transport, auth).delete_image("Abc")

        assert result.success
        body = site.json_bodies()[0]
        assert body["deleting[ids][]"] == "Abc"
        assert body["auth_token"] == TOKEN

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self, mock_transport, auth):
        """Test an expired auth_token is refreshed, persisted and retried."""
        site = FakeSite(json_responses=[expired(), httpx.Response(200, json={})])
        saved = []

        async def on_extra_updated(extra):
            saved.append(extra)

        result = await make_manager(site, mock_transport, auth, on_extra_updated=on_extra_updated).delete_image("Abc")

        assert result.success
        assert site.refreshes == 1
        assert [b["auth_token"] for b in site.json_bodies()] == [TOKEN, FRESH_TOKEN]
        assert saved == [{"token": FRESH_TOKEN, "cookie": "PHPSESSID=abc; KEEP_LOGIN=xyz"}]

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, mock_transport, auth, settings):
        """Test the refresh gives up after max_retry_count attempts."""
        site = FakeSite(json_responses=[expired() for _ in range(10)])

        result = await make_manager(site, mock_transport, auth).delete_image("Abc")

        assert result.model_dump() == {"success": False, "error": AUTH_TOKEN_EXPIRED}
        assert site.refreshes == settings.max_retry_count
        assert len(site.json_bodies()) == settings.max_retry_count + 1

    @pytest.mark.asyncio
    async def test_image_not_found(self, mock_transport, auth):
        site = FakeSite(json_responses=[httpx.Response(400, json={"error": {"message": INVALID_OWNER}})])
        result = await make_manager(site, mock_transport, auth).delete_image("Abc")
        assert result.model_dump() == {"success": False, "error": "image not found"}


class TestUpload:
    """Test cases for uploads."""

    @pytest.mark.asyncio
    async def test_upload_logs_in_first(self, mock_transport, make_image):
        """Test a manager without session data logs in before uploading."""
        site = FakeSite(
            json_responses=[
                httpx.Response(
                    200,
                    json={"image": {"url": "https://s1.imgse.com/a.png", "name": "aB3", "thumb": {"url": "https://s1.imgse.com/a.th.png"}}},
                )
            ]
        )
        saved = []

        async def on_extra_updated(extra):
            saved.append(extra)

        manager = make_manager(
            site,
            mock_transport,
            CheveretoAuthConfig(username="me", password="secret"),
            on_extra_updated=on_extra_updated,
        )

        image = await manager.upload(make_image("a.png"))

        assert image.url == "https://s1.imgse.com/a.png"
        assert image.deleted_id == "aB3"
        assert image.thumb == "https://s1.imgse.com/a.th.png"
        assert saved[0]["token"] == TOKEN
        upload = site.requests[-1]
        assert b'name="auth_token"' in upload.content
        assert b'name="source"; filename="a.png"' in upload.content

    @pytest.mark.asyncio
    async def test_upload_rejected(self, mock_transport, auth, make_image):
        site = FakeSite(json_responses=[httpx.Response(400, json={"error": {"message": "Duplicated upload"}})])
        with pytest.raises(ProviderRejected) as exc_info:
            await make_manager(site, mock_transport, auth).upload(make_image("a.png"))
        assert exc_info.value.message == "Duplicated upload"


class TestList:
    """Test cases for album listing."""

    @pytest.mark.asyncio
    async def test_pagination(self, mock_transport, auth):
        first = (
            '<b data-text="image-count">100</b>'
            + data_object("https://img.tg/1.png", "one", "https://img.tg/1.th.png")
            + '<a href="/me/?page=2&seek=2024-01-01.42">next</a>'
        )
        second = data_object("https://img.tg/2.png", "two", "https://img.tg/2.th.png")
        site = FakeSite(pages={"1": first, "2": second})

        images = await make_manager(site, mock_transport, auth, code="IMGTG").get_all_images()

        assert [i.deleted_id for i in images] == ["one", "two"]
        assert images[0].thumb == "https://img.tg/1.th.png"
        assert site.requests[1].url.params["seek"] == "2024-01-01.42"
        assert site.requests[0].headers["Cookie"] == "PHPSESSID=abc; KEEP_LOGIN=xyz"

    @pytest.mark.asyncio
    async def test_single_page(self, mock_transport, auth):
        site = FakeSite(pages={"1": '<b data-text="image-count">0</b>'})
        assert await make_manager(site, mock_transport, auth, code="IMGTG").get_all_images() == []
