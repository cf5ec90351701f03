"""
Tests for image transcoding, quality assessment and upload.
"""

import io
from unittest.mock import patch

import httpx
import pytest
from PIL import Image

from conftest import make_image_bytes


class TestTranscode:
    """WebP first, JPEG for tall images, refusal beyond every format."""

    def test_webp_output(self):
        from catalog.services.images import transcode

        result = transcode(make_image_bytes(120, 180))

        assert result.format == "webp"
        assert result.extension == "webp"
        assert (result.width, result.height) == (120, 180)
        assert result.quality == "healthy"
        assert Image.open(io.BytesIO(result.data)).format == "WEBP"

    def test_jpeg_fallback_for_tall_images(self):
        from catalog.services import images

        with patch.object(images, "WEBP_MAX_DIMENSION", 100):
            result = images.transcode(make_image_bytes(80, 400))

        assert result.format == "jpeg"
        assert result.extension == "jpg"
        assert Image.open(io.BytesIO(result.data)).format == "JPEG"

    def test_too_large_for_every_format(self):
        from catalog.exceptions import ImageTooLargeError
        from catalog.services import images

        with patch.object(images, "WEBP_MAX_DIMENSION", 100), patch.object(images, "JPEG_MAX_DIMENSION", 200):
            with pytest.raises(ImageTooLargeError) as exc_info:
                images.transcode(make_image_bytes(80, 400))

        assert exc_info.value.height == 400

    def test_animated_too_large_has_no_fallback(self):
        from catalog.exceptions import ImageTooLargeError
        from catalog.services import images

        frames = [Image.effect_noise((60, 150), 64).convert("RGB") for _ in range(2)]
        output = io.BytesIO()
        frames[0].save(output, format="GIF", save_all=True, append_images=frames[1:])

        with patch.object(images, "WEBP_MAX_DIMENSION", 100):
            with pytest.raises(ImageTooLargeError) as exc_info:
                images.transcode(output.getvalue())

        assert exc_info.value.animated is True

    def test_not_an_image(self):
        from catalog.exceptions import SourceFetchError
        from catalog.services.images import transcode

        with pytest.raises(SourceFetchError):
            transcode(b"<html>blocked</html>")


class TestAssessQuality:
    def test_tiny_image_degraded(self):
        from catalog.services.images import assess_quality

        image = Image.effect_noise((20, 30), 64)
        quality, issues = assess_quality(image, truncated=False)

        assert quality == "degraded"
        assert any("tiny" in issue for issue in issues)

    def test_uniform_image_degraded(self):
        from catalog.services.images import assess_quality

        quality, issues = assess_quality(Image.new("RGB", (200, 300), "white"), truncated=False)

        assert quality == "degraded"
        assert "near-uniform content" in issues

    def test_extreme_aspect_ratio(self):
        from catalog.services.images import assess_quality

        quality, issues = assess_quality(Image.effect_noise((60, 6000), 64), truncated=False)

        assert quality == "degraded"
        assert any("aspect ratio" in issue for issue in issues)

    def test_truncated_is_corrupted(self):
        from catalog.services.images import assess_quality

        quality, _ = assess_quality(Image.effect_noise((200, 300), 64), truncated=True)

        assert quality == "corrupted"

    def test_truncated_file_decoded(self):
        from catalog.services.images import transcode

        data = make_image_bytes(200, 300, image_format="JPEG")
        result = transcode(data[: len(data) // 2])

        assert result.quality == "corrupted"
        assert "truncated image data" in result.issues

    def test_truncated_files_classified_under_concurrency(self):
        from concurrent.futures import ThreadPoolExecutor

        from PIL import ImageFile

        from catalog.services.images import transcode

        data = make_image_bytes(200, 300, image_format="JPEG")
        truncated = data[: len(data) // 2]

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(transcode, [truncated] * 60))

        assert {result.quality for result in results} == {"corrupted"}
        assert ImageFile.LOAD_TRUNCATED_IMAGES is False


class TestUploadImage:
    """Download, transcode and store one image."""

    async def test_upload_stores_webp(self):
        from catalog.services import storage
        from catalog.services.images import upload_image

        data = make_image_bytes()
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=data))

        async with httpx.AsyncClient(transport=transport) as client:
            result = await upload_image("https://fake.test/p/1.png", "serie/chapters/ch/page-1", client=client)

        assert result.url == "https://media.test/serie/chapters/ch/page-1.webp"
        assert result.format == "webp"
        assert result.metadata["width"] == 120
        assert storage.get_storage().exists("serie/chapters/ch/page-1.webp")

    async def test_download_gives_up_on_client_error(self):
        from catalog.exceptions import SourceFetchError
        from catalog.services.images import download_image

        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(SourceFetchError):
                await download_image("https://fake.test/missing.png", client=client, retries=3)

        assert len(calls) == 1

    async def test_download_retries_server_errors(self):
        from catalog.services.images import download_image

        responses = [httpx.Response(503), httpx.Response(200, content=b"image")]

        with patch("catalog.services.images.asyncio.sleep") as sleep:
            sleep.return_value = None
            async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: responses.pop(0))) as client:
                data = await download_image("https://fake.test/flaky.png", client=client, retries=2)

        assert data == b"image"

    async def test_download_sends_referer(self):
        from catalog.services.images import download_image

        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, content=b"ok")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await download_image("https://fake.test/a.png", client=client, headers={"Referer": "https://fake.test/"})

        assert seen["referer"] == "https://fake.test/"
        assert "user-agent" in seen
