import asyncio

import httpx
import pytest

from weavegraph.config import Settings
from weavegraph.core.Errors import TransportError, ValidationError
from weavegraph.services.cloudinary import CloudinaryMedia, crop_url

IMAGE = "https://res.cloudinary.com/demo/image/upload/v1712/samples/dog.jpg"


class TestCloudinaryUrls:

    def test_crop_injects_relative_transformation(self):
        assert crop_url(IMAGE, 10, 20, 50, 40) == (
            "https://res.cloudinary.com/demo/image/upload/c_crop,x_0.1,y_0.2,w_0.5,h_0.4/v1712/samples/dog.jpg"
        )

    def test_full_frame_crop(self):
        assert "c_crop,x_0.0,y_0.0,w_1.0,h_1.0/" in crop_url(IMAGE, 0, 0, 100, 100)

    def test_crop_replaces_existing_transformation(self):
        cropped = crop_url(IMAGE, 10, 10, 50, 50)
        recropped = crop_url(cropped, 25, 0, 12.5, 100)
        assert recropped == (
            "https://res.cloudinary.com/demo/image/upload/c_crop,x_0.25,y_0.0,w_0.125,h_1.0/v1712/samples/dog.jpg"
        )

    def test_crop_rejects_foreign_urls(self):
        with pytest.raises(ValidationError):
            crop_url("https://example.com/dog.jpg", 0, 0, 10, 10)
        with pytest.raises(ValidationError):
            crop_url("https://res.cloudinary.com/demo/image/fetch/dog.jpg", 0, 0, 10, 10)


class TestCloudinaryUpload:

    def setup_method(self):
        self.requests = []

    def media(self, handler):
        def recording(request):
            self.requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
        return CloudinaryMedia("demo", "unsigned_preset", client=client)

    def test_upload_returns_secure_url(self):
        media = self.media(lambda request: httpx.Response(200, json={
            "secure_url": "https://res.cloudinary.com/demo/video/upload/v1/clip.mp4",
        }))

        url = asyncio.run(media.upload(b"\x00\x01", "clip.mp4", "video"))

        assert url == "https://res.cloudinary.com/demo/video/upload/v1/clip.mp4"
        request = self.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.cloudinary.com/v1_1/demo/video/upload"
        assert b"unsigned_preset" in request.content
        assert b"clip.mp4" in request.content

    def test_upload_error_message_is_surfaced(self):
        media = self.media(lambda request: httpx.Response(400, json={"error": {"message": "Upload preset not found"}}))
        with pytest.raises(TransportError, match="Upload preset not found"):
            asyncio.run(media.upload(b"x", "a.png"))

    def test_upload_without_secure_url_fails(self):
        media = self.media(lambda request: httpx.Response(200, json={}))
        with pytest.raises(TransportError):
            asyncio.run(media.upload(b"x", "a.png"))

    def test_network_failure_becomes_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            asyncio.run(self.media(refuse).upload(b"x", "a.png"))

    def test_unsupported_resource_type(self):
        media = self.media(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ValidationError):
            asyncio.run(media.upload(b"x", "a.gltf", "model"))
        assert self.requests == []

    def test_from_settings_requires_credentials(self):
        with pytest.raises(ValueError):
            CloudinaryMedia.from_settings(Settings())
        media = CloudinaryMedia.from_settings(
            Settings(cloudinary_cloud_name="demo", cloudinary_upload_preset="p"),
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
        )
        assert media.cloud_name == "demo"
