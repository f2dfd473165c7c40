"""Tests for the API, SM.MS and git storage managers."""

import base64
import json

import httpx
import pytest

from up2b.errors import ConfigError, DecodeError, NetworkError, ProviderRejected, ValidationError
from up2b.managers import ApiManager, CheveretoManager, GitManager, SmmsManager, create_manager
from up2b.managers.git import DELETE_MESSAGE
from up2b.schemas import ApiAuthConfig, ApiConfig, CheveretoAuthConfig, GitAuthConfig, ImageFormat
from up2b.transport import HttpTransport


@pytest.fixture
def api_manager_for(api_descriptor, mock_transport):
    def _make(handler):
        return ApiManager(
            "CUSTOM-TEST", ApiConfig.model_validate(api_descriptor), "secret", mock_transport(handler)
        )

    return _make


class TestApiManager:
    """Test cases for ApiManager."""

    @pytest.mark.asyncio
    async def test_get_all_images(self, api_manager_for):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": {"items": [{"url": "https://x/1.png", "id": 1}]}})

        images = await api_manager_for(handler).get_all_images()

        assert [i.url for i in images] == ["https://x/1.png"]
        assert requests[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_delete_with_status_controller(self, api_manager_for):
        """Test a 404 from a status-only delete is an unsuccessful result."""
        result = await api_manager_for(lambda request: httpx.Response(404)).delete_image("abc")
        assert result.model_dump() == {"success": False, "error": None}

    @pytest.mark.asyncio
    async def test_delete_success(self, api_manager_for):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(204)

        result = await api_manager_for(handler).delete_image("abc")

        assert result.success
        assert paths == ["/api/images/abc"]

    @pytest.mark.asyncio
    async def test_upload_reports_progress(self, api_manager_for, make_image):
        """Test a streamed upload reports progress and returns the record."""
        progress = []

        def handler(request):
            assert b'name="file"; filename="photo.png"' in request.content
            return httpx.Response(200, json={"success": True, "data": {"url": "https://x/p.png", "id": "p1"}})

        manager = api_manager_for(handler)
        image = await manager.upload(
            make_image("photo.png", size=(64, 64), noise=True),
            on_progress=lambda sent, total: progress.append((sent, total)),
        )

        assert image.deleted_id == "p1"
        assert progress
        assert progress[-1][0] == progress[-1][1]

    @pytest.mark.asyncio
    async def test_buffer_upload_has_no_progress(self, api_descriptor, mock_transport, make_image):
        api_descriptor["upload"]["content_type"]["file_kind"] = "BUFFER"
        manager = ApiManager(
            "CUSTOM-TEST",
            ApiConfig.model_validate(api_descriptor),
            "secret",
            mock_transport(lambda r: httpx.Response(200, json={"success": True, "data": {"url": "u", "id": 1}})),
        )
        progress = []

        await manager.upload(make_image("a.png"), on_progress=lambda s, t: progress.append(s))

        assert not manager.supports_stream
        assert progress == []

    @pytest.mark.asyncio
    async def test_network_error(self, api_manager_for):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            await api_manager_for(handler).get_all_images()


class TestSmmsManager:
    """Test cases for the built-in SM.MS provider."""

    @pytest.mark.asyncio
    async def test_list(self, mock_transport):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"success": True, "data": [{"url": "https://s.ee/a.png", "hash": "h1"}]})

        images = await SmmsManager("tok", mock_transport(handler)).get_all_images()

        assert str(requests[0].url) == "https://smms.app/api/v2/upload_history"
        assert requests[0].headers["Authorization"] == "tok"
        assert images[0].deleted_id == "h1"

    @pytest.mark.asyncio
    async def test_delete(self, mock_transport):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"success": False, "message": "File already deleted."})

        result = await SmmsManager("tok", mock_transport(handler)).delete_image("h1")

        assert str(requests[0].url) == "https://smms.app/api/v2/delete/h1"
        assert result.model_dump() == {"success": False, "error": "File already deleted."}

    def test_capabilities(self, settings):
        manager = SmmsManager("tok", HttpTransport(settings))
        assert manager.max_size == 5 * 1024 * 1024
        assert ImageFormat.AVIF not in manager.allowed_formats
        assert manager.supports_stream


@pytest.fixture
def git_auth():
    return GitAuthConfig(token="ghp", username="me", repository="pics", path="img")


class TestGitManager:
    """Test cases for GitManager."""

    @pytest.mark.asyncio
    async def test_missing_directory_is_empty(self, git_auth, mock_transport):
        """Test a 404 on the storage directory is an empty listing."""
        manager = GitManager("GITHUB", git_auth, mock_transport(lambda r: httpx.Response(404, json={"message": "Not Found"})))
        assert await manager.get_all_images() == []

    @pytest.mark.asyncio
    async def test_list(self, git_auth, mock_transport):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json=[{"download_url": "https://raw/a.png", "sha": "s1", "url": "https://api/contents/img/a.png"}],
            )

        images = await GitManager("GITHUB", git_auth, mock_transport(handler)).get_all_images()

        assert str(requests[0].url) == "https://api.github.com/repos/me/pics/contents/img"
        assert requests[0].headers["Authorization"] == "Bearer ghp"
        assert images[0].url == "https://raw/a.png"
        assert images[0].deleted_id == "https://api/contents/img/a.png---s1"

    @pytest.mark.asyncio
    async def test_list_rejected(self, git_auth, mock_transport):
        manager = GitManager("GITHUB", git_auth, mock_transport(lambda r: httpx.Response(401, json={"message": "Bad credentials"})))
        with pytest.raises(ProviderRejected) as exc_info:
            await manager.get_all_images()
        assert exc_info.value.message == "Bad credentials"

    @pytest.mark.asyncio
    async def test_delete(self, git_auth, mock_transport):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"commit": {}})

        manager = GitManager("GITHUB", git_auth, mock_transport(handler))
        result = await manager.delete_image("https://api/contents/img/a.png---s1")

        assert result.success
        assert requests[0].method == "DELETE"
        assert str(requests[0].url) == "https://api/contents/img/a.png"
        assert json.loads(requests[0].content) == {"sha": "s1", "message": DELETE_MESSAGE}

    @pytest.mark.asyncio
    async def test_delete_malformed_id(self, git_auth, mock_transport):
        manager = GitManager("GITHUB", git_auth, mock_transport(lambda r: httpx.Response(200)))
        with pytest.raises(ValidationError):
            await manager.delete_image("no-separator")

    @pytest.mark.asyncio
    async def test_upload(self, git_auth, mock_transport, make_image):
        requests = []
        path = make_image("cat.png")

        def handler(request):
            requests.append(request)
            return httpx.Response(
                201,
                json={"content": {"download_url": "https://raw/cat.png", "sha": "s2", "url": "https://api/c/cat.png"}},
            )

        image = await GitManager("GITHUB", git_auth, mock_transport(handler)).upload(path)

        assert requests[0].method == "PUT"
        assert requests[0].url.path.startswith("/repos/me/pics/contents/img/cat_")
        assert requests[0].url.path.endswith(".png")
        assert base64.b64decode(json.loads(requests[0].content)["content"]) == path.read_bytes()
        assert image.deleted_id == "https://api/c/cat.png---s2"

    @pytest.mark.asyncio
    async def test_upload_unexpected_body(self, git_auth, mock_transport, make_image):
        manager = GitManager("GITHUB", git_auth, mock_transport(lambda r: httpx.Response(201, json={"content": None})))
        with pytest.raises(DecodeError):
            await manager.upload(make_image("cat.png"))


class TestCreateManager:
    """Test cases for the manager factory."""

    def test_dispatch(self, settings, api_descriptor, git_auth):
        transport = HttpTransport(settings)
        api_auth = ApiAuthConfig(token="t", api=ApiConfig.model_validate(api_descriptor))
        chevereto = CheveretoAuthConfig(username="u", password="p")

        assert isinstance(create_manager("smms", api_auth, transport), SmmsManager)
        assert isinstance(create_manager("CUSTOM-X", api_auth, transport), ApiManager)
        assert isinstance(create_manager("IMGTG", chevereto, transport), CheveretoManager)
        assert isinstance(create_manager("GITHUB", git_auth, transport), GitManager)

    def test_missing_config(self, settings):
        with pytest.raises(ConfigError):
            create_manager("GITHUB", None, HttpTransport(settings))

    def test_wrong_kind(self, settings, git_auth):
        with pytest.raises(ConfigError):
            create_manager("IMGSE", git_auth, HttpTransport(settings))
