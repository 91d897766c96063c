"""
Tests for environment sources: the template catalog and the OpenAI adapter.

The OpenAI client is replaced with a Mock; no network calls are made.
"""

import base64
import io
import json
from types import SimpleNamespace
from unittest.mock import Mock

import httpx
import openai
import pytest
from PIL import Image

from mockup_studio.config import AppConfig
from mockup_studio.environments import (
    EnvironmentQuery, OpenAIEnvironmentSource, TemplateEnvironmentSource,
    generation_size_for, slugify_environment_name
)
from mockup_studio.errors import (
    ConfigurationError, EnvironmentGenerationError, EnvironmentNotFound, ValidationError
)
from mockup_studio.models import ArtworkDimensions, EnvironmentCategory, Orientation, WallRegion

from tests.conftest import make_image_bytes


REFINED = {
    "dallePrompt": "A sunlit loft with exposed brick and a tall blank plaster wall.",
    "name": "Sunlit Brick Loft",
    "category": "loft",
    "wallColor": "off-white plaster",
    "lighting": "afternoon sun through steel windows",
    "roomType": "loft",
    "mood": "warm",
    "tags": ["brick", "industrial"],
    "orientation": "landscape",
}

VARIATIONS = {
    "variations": [
        {**REFINED, "name": "Sunlit Brick Loft", "description": "warm industrial afternoon"},
        {**REFINED, "name": "Nordic Living Room", "category": "living-room", "description": "pale oak and linen"},
        {**REFINED, "name": "Dusk Gallery", "category": "gallery", "description": "cool evening spotlights"},
    ]
}


def chat_response(payload):
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def image_response(data: bytes = None, url: str = None):
    b64 = base64.b64encode(data).decode('ascii') if data is not None else None
    return SimpleNamespace(data=[SimpleNamespace(b64_json=b64, url=url)])


def connection_error():
    return openai.APIConnectionError(request=httpx.Request('POST', 'https://api.openai.com/v1/images/generations'))


@pytest.fixture
def generated_png():
    return make_image_bytes((1024, 1792), (210, 200, 190), fmt='PNG')


@pytest.fixture
def openai_client(generated_png):
    client = Mock()
    client.chat.completions.create.return_value = chat_response(REFINED)
    client.images.generate.return_value = image_response(generated_png)
    return client


@pytest.fixture
def source_config():
    return AppConfig(GENERATION_MAX_ATTEMPTS=3)


class TestHelpers:
    """Test naming and sizing helpers."""

    @pytest.mark.parametrize("orientation, size", [
        (Orientation.SQUARE, "1024x1024"),
        (Orientation.LANDSCAPE, "1792x1024"),
        (Orientation.PORTRAIT, "1024x1792"),
    ])
    def test_generation_size_for(self, orientation, size):
        assert generation_size_for(orientation) == size

    def test_slug_is_kebab_name_plus_id_prefix(self):
        slug = slugify_environment_name("Sunlit Brick Loft!", "3f9a12cd-0000-4000-8000-000000000000")

        assert slug == "sunlit-brick-loft-3f9a12"

    def test_slug_without_usable_name(self):
        assert slugify_environment_name("***", "abcdef123") == "abcdef"


class TestTemplateEnvironmentSource:
    """Test the static template catalog."""

    @pytest.fixture
    def source(self, template_dir, fake_catalog):
        return TemplateEnvironmentSource(str(template_dir), str(template_dir.parent / 'environments.yaml'),
                                         catalog=fake_catalog)

    def test_list_templates(self, source):
        templates = source.list_templates()

        assert [t['id'] for t in templates] == ['missing-image', 'test-loft']
        loft = templates[1]
        assert loft['category'] == 'loft'
        assert loft['available'] is True
        assert templates[0]['available'] is False

    def test_list_templates_by_category(self, source):
        assert [t['id'] for t in source.list_templates('loft')] == ['test-loft']

    def test_acquire_template(self, source, fake_catalog):
        asset = source.acquire(EnvironmentQuery(template_id='test-loft'))

        assert asset.source == 'template'
        assert asset.category == EnvironmentCategory.LOFT
        assert asset.orientation == Orientation.LANDSCAPE
        assert asset.wall_region == WallRegion(128, 64, 1536, 700)
        assert asset.tags == ('industrial',)
        assert Image.open(io.BytesIO(asset.data)).size == (1792, 1024)
        assert fake_catalog.usage == {'test-loft': 1}

    def test_unknown_template_raises(self, source):
        with pytest.raises(EnvironmentNotFound):
            source.acquire(EnvironmentQuery(template_id='ocean-villa'))

    def test_missing_image_raises(self, source):
        with pytest.raises(EnvironmentNotFound) as exc_info:
            source.acquire(EnvironmentQuery(template_id='missing-image'))

        assert exc_info.value.details['expected_path'].endswith('not-there.jpg')

    def test_missing_catalog_file_means_no_templates(self, tmp_path):
        source = TemplateEnvironmentSource(str(tmp_path), str(tmp_path / 'nope.yaml'))

        assert source.list_templates() == []


class TestOpenAIEnvironmentSource:
    """Test AI environment generation against a mocked OpenAI client."""

    def test_requires_api_key_without_client(self):
        with pytest.raises(ConfigurationError):
            OpenAIEnvironmentSource(config=AppConfig(OPENAI_API_KEY=None))

    def test_generates_environment(self, openai_client, source_config):
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)

        asset = source.acquire(EnvironmentQuery(prompt="sunny loft", dimensions=ArtworkDimensions(24, 36)))

        assert asset.name == "Sunlit Brick Loft"
        assert asset.category == EnvironmentCategory.LOFT
        assert asset.wall_color == "off-white plaster"
        assert asset.source == "generated"
        assert asset.orientation == Orientation.PORTRAIT
        assert asset.environment_id
        image = Image.open(io.BytesIO(asset.data))
        assert image.format == 'JPEG'
        assert image.size == (1024, 1792)

    def test_refinement_uses_json_mode(self, openai_client, source_config):
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)
        source.acquire(EnvironmentQuery(prompt="sunny loft", artwork_style="abstract", artwork_colors="teal"))

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == 'gpt-4o'
        assert kwargs['response_format'] == {"type": "json_object"}
        assert "abstract" in kwargs['messages'][0]['content']
        assert "sunny loft" in kwargs['messages'][1]['content']

    @pytest.mark.parametrize("dimensions, size", [
        (ArtworkDimensions(24, 36), "1024x1792"),
        (ArtworkDimensions(36, 24), "1792x1024"),
        (ArtworkDimensions(20, 21), "1024x1024"),
    ])
    def test_size_follows_artwork_orientation(self, openai_client, source_config, dimensions, size):
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)
        source.acquire(EnvironmentQuery(prompt="gallery", dimensions=dimensions))

        kwargs = openai_client.images.generate.call_args.kwargs
        assert kwargs['size'] == size
        assert kwargs['model'] == 'dall-e-3'
        assert kwargs['quality'] == 'hd'
        assert kwargs['style'] == 'natural'
        assert kwargs['prompt'].startswith(REFINED['dallePrompt'])

    def test_size_falls_back_to_refined_orientation(self, openai_client, source_config):
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)
        source.acquire(EnvironmentQuery(prompt="gallery"))

        assert openai_client.images.generate.call_args.kwargs['size'] == "1792x1024"

    def test_downloads_url_when_no_b64(self, openai_client, source_config, generated_png):
        openai_client.images.generate.return_value = image_response(url="https://images.example.com/room.png")
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, content=generated_png)

        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config, http_client=http_client)

        asset = source.acquire(EnvironmentQuery(prompt="loft"))

        assert requested == ["https://images.example.com/room.png"]
        assert Image.open(io.BytesIO(asset.data)).size == (1024, 1792)

    def test_retries_then_succeeds(self, openai_client, source_config, generated_png):
        openai_client.images.generate.side_effect = [connection_error(), image_response(generated_png)]
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)

        asset = source.acquire(EnvironmentQuery(prompt="loft"))

        assert asset.name == "Sunlit Brick Loft"
        assert openai_client.images.generate.call_count == 2

    def test_gives_up_after_max_attempts(self, openai_client, source_config):
        openai_client.images.generate.side_effect = connection_error()
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)

        with pytest.raises(EnvironmentGenerationError) as exc_info:
            source.acquire(EnvironmentQuery(prompt="loft"))

        assert exc_info.value.details['attempts'] == 3
        assert openai_client.images.generate.call_count == 3

    def test_malformed_refinement_is_retried(self, openai_client, source_config):
        openai_client.chat.completions.create.side_effect = [chat_response("not json"), chat_response({"name": "x"}),
                                                      chat_response(REFINED)]
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)

        asset = source.acquire(EnvironmentQuery(prompt="loft"))

        assert asset.name == "Sunlit Brick Loft"
        assert openai_client.chat.completions.create.call_count == 3

    def test_undecodable_image_is_a_generation_error(self, openai_client, source_config):
        openai_client.images.generate.return_value = SimpleNamespace(
            data=[SimpleNamespace(b64_json=base64.b64encode(b'not an image').decode(), url=None)]
        )
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)

        with pytest.raises(EnvironmentGenerationError):
            source.acquire(EnvironmentQuery(prompt="loft"))

    def test_saves_through_catalog(self, openai_client, source_config, fake_catalog):
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config, catalog=fake_catalog)

        asset = source.acquire(EnvironmentQuery(prompt="loft", user_id="user-7"))

        assert len(fake_catalog.saved) == 1
        saved, slug, user_id = fake_catalog.saved[0]
        assert saved is asset
        assert slug == f"sunlit-brick-loft-{asset.environment_id[:6]}"
        assert user_id == "user-7"

    def test_empty_prompt_is_rejected(self, openai_client, source_config):
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config)

        with pytest.raises(ValidationError):
            source.acquire(EnvironmentQuery(prompt="   "))
        openai_client.images.generate.assert_not_called()

    def test_generated_environment_has_thumbnail(self, openai_client, source_config, fake_catalog):
        source = OpenAIEnvironmentSource(client=openai_client, config=source_config, catalog=fake_catalog)

        asset = source.acquire(EnvironmentQuery(prompt="loft"))

        thumbnail = Image.open(io.BytesIO(asset.thumbnail))
        assert thumbnail.format == 'JPEG'
        assert thumbnail.size == (400, 300)
        assert fake_catalog.saved[0][0].thumbnail == asset.thumbnail


class TestEnvironmentVariations:
    """Test variation sets against a mocked OpenAI client."""

    @pytest.fixture
    def source(self, openai_client, source_config, fake_catalog):
        openai_client.chat.completions.create.return_value = chat_response(VARIATIONS)
        return OpenAIEnvironmentSource(client=openai_client, config=source_config, catalog=fake_catalog)

    def test_generates_requested_variations(self, source, openai_client, fake_catalog):
        assets = source.acquire_variations(EnvironmentQuery(prompt="loft", dimensions=ArtworkDimensions(24, 36)))

        assert [a.name for a in assets] == ["Sunlit Brick Loft", "Nordic Living Room", "Dusk Gallery"]
        assert [a.description for a in assets] == [v["description"] for v in VARIATIONS["variations"]]
        assert len({a.environment_id for a in assets}) == 3
        assert all(a.orientation == Orientation.PORTRAIT for a in assets)
        assert all(Image.open(io.BytesIO(a.thumbnail)).size == (400, 300) for a in assets)
        assert fake_catalog.saved == []

    def test_one_refinement_call_and_shared_size(self, source, openai_client):
        source.acquire_variations(EnvironmentQuery(prompt="loft", dimensions=ArtworkDimensions(36, 24)), count=2)

        assert openai_client.chat.completions.create.call_count == 1
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs['max_tokens'] == 1500
        assert "2 photorealistic interiors" in kwargs['messages'][0]['content']
        sizes = [c.kwargs['size'] for c in openai_client.images.generate.call_args_list]
        assert sizes == ["1792x1024", "1792x1024"]

    def test_size_falls_back_to_first_variation_orientation(self, source, openai_client):
        source.acquire_variations(EnvironmentQuery(prompt="loft"))

        assert {c.kwargs['size'] for c in openai_client.images.generate.call_args_list} == {"1792x1024"}

    @pytest.mark.parametrize("count", [0, 5])
    def test_count_is_validated(self, source, openai_client, count):
        with pytest.raises(ValidationError):
            source.acquire_variations(EnvironmentQuery(prompt="loft"), count=count)
        openai_client.chat.completions.create.assert_not_called()

    def test_too_few_variations_are_retried(self, source, openai_client):
        short = {"variations": VARIATIONS["variations"][:1]}
        openai_client.chat.completions.create.side_effect = [chat_response(short), chat_response(VARIATIONS)]

        assets = source.acquire_variations(EnvironmentQuery(prompt="loft"))

        assert len(assets) == 3
        assert openai_client.chat.completions.create.call_count == 2

    def test_gives_up_after_max_attempts(self, source, openai_client):
        openai_client.chat.completions.create.return_value = chat_response({"variations": []})

        with pytest.raises(EnvironmentGenerationError) as exc_info:
            source.acquire_variations(EnvironmentQuery(prompt="loft"))

        assert exc_info.value.details['attempts'] == 3
        openai_client.images.generate.assert_not_called()

    def test_failed_image_retries_whole_set(self, source, openai_client, generated_png):
        openai_client.images.generate.side_effect = [connection_error()] + [image_response(generated_png)] * 5

        assets = source.acquire_variations(EnvironmentQuery(prompt="loft"))

        assert len(assets) == 3
        assert openai_client.images.generate.call_count == 6
        assert openai_client.chat.completions.create.call_count == 2

    def test_empty_prompt_is_rejected(self, source, openai_client):
        with pytest.raises(ValidationError):
            source.acquire_variations(EnvironmentQuery(prompt=""))
        openai_client.chat.completions.create.assert_not_called()
