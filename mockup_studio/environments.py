"""
Environment acquisition for Mockup Studio.

This module handles:
- The capability interfaces the core depends on (EnvironmentSource, AssetCatalog)
- A static template catalog of room photographs
- AI-generated rooms: an OpenAI chat call refines the user's description
  into an image prompt plus metadata, then the image model renders it
- Variation sets: one chat call describes several distinct rooms, rendered concurrently

Retries for the generation service live here and nowhere else; the
compositing pipeline itself never retries and never touches the network.
"""

import base64
import io
import json
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Any

import httpx
import openai
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from loguru import logger

from mockup_studio.assets import create_thumbnail, decode_image, to_rgb
from mockup_studio.config import AppConfig, get_config, load_yaml_config
from mockup_studio.dimensions import orientation_for_dimensions
from mockup_studio.errors import (
    AssetDecodeFailure, ConfigurationError, EnvironmentGenerationError, EnvironmentNotFound,
    ValidationError
)
from mockup_studio.models import (
    ArtworkDimensions, EnvironmentAsset, EnvironmentCategory, Orientation, WallRegion
)


GENERATION_SIZES: Dict[Orientation, str] = {
    Orientation.SQUARE: "1024x1024",
    Orientation.LANDSCAPE: "1792x1024",
    Orientation.PORTRAIT: "1024x1792",
}

MAX_VARIATIONS = 4

RETRYABLE_ERRORS = (openai.OpenAIError, httpx.HTTPError, json.JSONDecodeError,
                    PydanticValidationError, AssetDecodeFailure, ValueError)

REFINEMENT_SYSTEM_PROMPT = """You are an interior designer and architectural photographer.
Describe a photorealistic interior that will later have artwork composited onto one of its walls.

The scene must include one prominent, evenly lit, flat and unobstructed wall.
That wall must stay completely blank: no paintings, posters, frames or shelves on it.
Include believable furniture, decor and architectural detail, and state the lighting precisely.
{artwork_notes}
Respond with a JSON object with these keys:
  "dallePrompt": two or three sentences for the image model,
  "name": a 2-5 word environment name,
  "category": one of {categories},
  "wallColor", "lighting", "roomType", "mood": short descriptions,
  "tags": up to five keywords,
  "orientation": "landscape", "portrait" or "square"
"""

VARIATIONS_SYSTEM_PROMPT = """You are an interior designer and architectural photographer.
Describe {count} photorealistic interiors for the same brief. Each must feel meaningfully different:
vary the room type, the lighting mood, the color palette or the architectural style.

Every scene needs one prominent, evenly lit, flat wall that stays completely blank:
no paintings, posters, frames or shelves on it.
{artwork_notes}
Respond with a JSON object {{"variations": [...]}} holding {count} objects with these keys:
  "dallePrompt": two or three sentences for the image model,
  "name": a 2-5 word environment name,
  "category": one of {categories},
  "mood": a short description,
  "description": one line on what makes this variation unique,
  "orientation": "landscape", "portrait" or "square"
"""

IMAGE_PROMPT_SUFFIX = (
    ". The wall where artwork would hang is clearly visible, well lit and completely blank, "
    "with no paintings, frames or decorations on it. Professional architectural photography, "
    "wide lens, balanced natural and artificial light, photorealistic, high detail."
)


@dataclass(frozen=True)
class EnvironmentQuery:
    """What the caller wants the environment to look like"""
    prompt: str = ""
    dimensions: Optional[ArtworkDimensions] = None
    category: Optional[str] = None
    template_id: Optional[str] = None
    artwork_style: Optional[str] = None
    artwork_mood: Optional[str] = None
    artwork_colors: Optional[str] = None
    user_id: Optional[str] = None


class EnvironmentSource(Protocol):
    """Anything that can hand the pipeline a background raster plus metadata."""

    def acquire(self, query: EnvironmentQuery) -> EnvironmentAsset:
        ...


class AssetCatalog(Protocol):
    """Persistence for saved and community environments, owned outside the core."""

    def save_environment(self, asset: EnvironmentAsset, slug: str, user_id: Optional[str] = None) -> str:
        ...

    def record_usage(self, environment_id: str) -> None:
        ...


class EnvironmentSpec(BaseModel):
    """Metadata returned by the refinement step"""
    dalle_prompt: str = Field(alias="dallePrompt", min_length=1)
    name: str = "Generated environment"
    category: Optional[str] = None
    wall_color: Optional[str] = Field(default=None, alias="wallColor")
    lighting: Optional[str] = None
    room_type: Optional[str] = Field(default=None, alias="roomType")
    mood: Optional[str] = None
    tags: List[str] = []
    orientation: Optional[str] = None
    description: Optional[str] = None

    model_config = {"populate_by_name": True}


class VariationSet(BaseModel):
    """Response of the variations refinement step"""
    variations: List[EnvironmentSpec] = Field(min_length=1)


def generation_size_for(orientation: Orientation) -> str:
    """Image-model canvas size matching the artwork orientation"""
    return GENERATION_SIZES[orientation]


def slugify_environment_name(name: str, environment_id: str) -> str:
    """Kebab-case name plus the first six characters of the id"""
    base = re.sub(r'[^a-z0-9]+', '-', (name or '').lower()).strip('-')
    suffix = environment_id[:6]
    return f"{base}-{suffix}" if base else suffix


def _wall_region_from(value: Any) -> Optional[WallRegion]:
    if not value:
        return None
    if isinstance(value, dict):
        return WallRegion(int(value['x']), int(value['y']), int(value['width']), int(value['height']))
    x, y, width, height = (int(v) for v in value)
    return WallRegion(x, y, width, height)


def _orientation_from(value: Optional[str]) -> Optional[Orientation]:
    if not value:
        return None
    try:
        return Orientation(str(value).strip().lower())
    except ValueError:
        return None


class TemplateEnvironmentSource:
    """Fixed room photographs listed in the template catalog YAML."""

    def __init__(self, templates_dir: str = None, catalog_path: str = None,
                 catalog: Optional[AssetCatalog] = None):
        config = get_config()
        self.catalog = catalog
        self.templates_dir = Path(templates_dir or config.TEMPLATES_DIR)
        self.catalog_path = catalog_path or config.TEMPLATE_CATALOG
        self.templates = self._load_catalog()

    def _load_catalog(self) -> Dict[str, Dict[str, Any]]:
        data = load_yaml_config(self.catalog_path)
        templates = {}
        for item in data.get("templates", []):
            template_id = item.get("id")
            if not template_id or not item.get("file"):
                logger.error(f"Skipping template without id or file: {item}")
                continue
            templates[template_id] = item
        logger.info(f"Loaded {len(templates)} environment templates")
        return templates

    def list_templates(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Template metadata for the picker, optionally filtered by category"""
        results = []
        for template_id, item in self.templates.items():
            if category and item.get("category") != category:
                continue
            results.append({
                'id': template_id,
                'name': item.get('name', template_id),
                'category': EnvironmentCategory.normalize(item.get('category')).value,
                'wall_color': item.get('wall_color'),
                'lighting': item.get('lighting'),
                'orientation': item.get('orientation'),
                'available': (self.templates_dir / item['file']).exists(),
            })
        results.sort(key=lambda x: x['name'])
        return results

    def acquire(self, query: EnvironmentQuery) -> EnvironmentAsset:
        item = self.templates.get(query.template_id or "")
        if item is None:
            raise EnvironmentNotFound(query.template_id or "")

        path = self.templates_dir / item['file']
        if not path.exists():
            raise EnvironmentNotFound(query.template_id, str(path))

        data = path.read_bytes()
        logger.debug(f"Loaded template environment {query.template_id} from {path} ({len(data):,} bytes)")
        if self.catalog is not None:
            self.catalog.record_usage(query.template_id)
        return EnvironmentAsset(
            data=data,
            name=item.get('name', query.template_id),
            category=EnvironmentCategory.normalize(item.get('category')),
            wall_color=item.get('wall_color'),
            lighting=item.get('lighting'),
            mood=item.get('mood'),
            room_type=item.get('room_type'),
            tags=tuple(item.get('tags', [])),
            orientation=_orientation_from(item.get('orientation')),
            wall_region=_wall_region_from(item.get('wall_region')),
            prompt=item.get('prompt'),
            source="template",
            environment_id=query.template_id,
        )


class OpenAIEnvironmentSource:
    """Generates blank-wall rooms with an OpenAI chat model and image model."""

    def __init__(self,
                 client: "openai.OpenAI" = None,
                 config: AppConfig = None,
                 catalog: Optional[AssetCatalog] = None,
                 http_client: httpx.Client = None):
        self.config = config or get_config()
        if client is None:
            if not self.config.OPENAI_API_KEY:
                raise ConfigurationError(
                    "OPENAI_API_KEY is not set; AI environments are disabled",
                    suggestions=["Set OPENAI_API_KEY in the environment or .env file",
                                 "Use a template environment instead"]
                )
            client = openai.OpenAI(api_key=self.config.OPENAI_API_KEY,
                                   timeout=self.config.GENERATION_TIMEOUT_S)
        self.client = client
        self.catalog = catalog
        self.http_client = http_client
        self.max_attempts = max(1, self.config.GENERATION_MAX_ATTEMPTS)

    def _artwork_notes(self, query: EnvironmentQuery) -> str:
        notes = []
        if query.artwork_style:
            notes.append(f"The artwork is {query.artwork_style} style.")
        if query.artwork_mood:
            notes.append(f"The artwork mood is {query.artwork_mood}.")
        if query.artwork_colors:
            notes.append(f"Dominant artwork colors: {query.artwork_colors}.")
        return "\n".join(notes)

    def _user_message(self, query: EnvironmentQuery, lead: str) -> str:
        user = f'{lead}: "{query.prompt}".'
        if query.dimensions is not None:
            dims = query.dimensions
            user += f" The artwork to display is {dims.width:g}x{dims.height:g} {dims.unit}."
        if query.category:
            user += f" Preferred room category: {query.category}."
        return user

    def _chat_json(self, system: str, user: str, max_tokens: int) -> Dict[str, Any]:
        response = self.client.chat.completions.create(
            model=self.config.OPENAI_CHAT_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )
        return json.loads(response.choices[0].message.content or "{}")

    def refine(self, query: EnvironmentQuery) -> EnvironmentSpec:
        """Turn the user's description into an image prompt plus room metadata."""
        system = REFINEMENT_SYSTEM_PROMPT.format(artwork_notes=self._artwork_notes(query),
                                                 categories=_category_choices())
        payload = self._chat_json(system, self._user_message(query, "Create an interior environment for"), 1000)
        return EnvironmentSpec.model_validate(payload)

    def refine_variations(self, query: EnvironmentQuery, count: int) -> List[EnvironmentSpec]:
        """One chat call describing `count` meaningfully different rooms."""
        system = VARIATIONS_SYSTEM_PROMPT.format(count=count, artwork_notes=self._artwork_notes(query),
                                                 categories=_category_choices())
        payload = self._chat_json(system, self._user_message(query, f"{count} environment variations for"), 1500)
        variations = VariationSet.model_validate(payload).variations
        if len(variations) < count:
            raise ValueError(f"expected {count} variations, got {len(variations)}")
        return variations[:count]

    def generate_image(self, prompt: str, size: str) -> bytes:
        """Render the prompt; prefers inline base64, falls back to downloading the URL."""
        response = self.client.images.generate(
            model=self.config.OPENAI_IMAGE_MODEL,
            prompt=prompt + IMAGE_PROMPT_SUFFIX,
            n=1,
            size=size,
            quality="hd",
            style="natural",
            response_format="b64_json",
        )
        if not response.data:
            raise ValueError("image model returned no image data")

        item = response.data[0]
        b64 = getattr(item, 'b64_json', None)
        if b64:
            return base64.b64decode(b64)

        url = getattr(item, 'url', None)
        if not url:
            raise ValueError("image model returned neither b64_json nor url")
        return self._download(url)

    def _download(self, url: str) -> bytes:
        if self.http_client is not None:
            response = self.http_client.get(url)
            response.raise_for_status()
            return response.content
        with httpx.Client(timeout=self.config.GENERATION_TIMEOUT_S) as client:
            response = client.get(url)
            response.raise_for_status()
            return response.content

    def _normalize(self, data: bytes) -> Tuple[bytes, bytes]:
        """Validate the generated raster; returns high-quality JPEG bytes and a preview thumbnail."""
        image = to_rgb(decode_image(data, "generated environment"))
        buffer = io.BytesIO()
        image.save(buffer, format='JPEG', quality=95)
        return buffer.getvalue(), create_thumbnail(image, tuple(self.config.THUMBNAIL_SIZE))

    def _render(self, refined: EnvironmentSpec, size: str) -> Tuple[bytes, bytes]:
        return self._normalize(self.generate_image(refined.dalle_prompt, size))

    def _with_retries(self, label: str, operation: Callable[[int], Any]) -> Any:
        """Run `operation(attempt)` up to max_attempts times; the only retry loop in the service."""
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation(attempt)
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(f"{label} attempt {attempt}/{self.max_attempts} failed: {e}")
        raise EnvironmentGenerationError(str(last_error), attempts=self.max_attempts)

    def _asset(self, query: EnvironmentQuery, refined: EnvironmentSpec, orientation: Orientation,
               rendered: Tuple[bytes, bytes]) -> EnvironmentAsset:
        data, thumbnail = rendered
        return EnvironmentAsset(
            data=data,
            name=refined.name,
            category=EnvironmentCategory.normalize(refined.category),
            wall_color=refined.wall_color,
            lighting=refined.lighting,
            mood=refined.mood,
            room_type=refined.room_type,
            tags=tuple(refined.tags),
            orientation=orientation,
            prompt=query.prompt,
            source="generated",
            environment_id=str(uuid.uuid4()),
            description=refined.description,
            thumbnail=thumbnail,
        )

    def acquire(self, query: EnvironmentQuery) -> EnvironmentAsset:
        _require_prompt(query)

        def attempt(number: int):
            refined = self.refine(query)
            orientation = _orientation_for(query, refined)
            size = generation_size_for(orientation)
            logger.info(f"Generating environment '{refined.name}' at {size} (attempt {number})")
            return refined, orientation, self._render(refined, size)

        refined, orientation, rendered = self._with_retries("Environment generation", attempt)
        asset = self._asset(query, refined, orientation, rendered)

        if self.catalog is not None:
            slug = slugify_environment_name(refined.name, asset.environment_id)
            self.catalog.save_environment(asset, slug, query.user_id)
            logger.info(f"Saved generated environment {slug}")

        return asset

    def acquire_variations(self, query: EnvironmentQuery, count: int = 3) -> List[EnvironmentAsset]:
        """
        Generate `count` distinct rooms for the same description.

        All variations share the canvas size chosen from the artwork
        orientation and are rendered concurrently. Any failed image retries
        the whole set. Variations are previews and are not saved to the catalog.
        """
        _require_prompt(query)
        if not 1 <= count <= MAX_VARIATIONS:
            raise ValidationError(f"Variation count must be between 1 and {MAX_VARIATIONS}",
                                  details={'count': count})

        def attempt(number: int):
            variations = self.refine_variations(query, count)
            orientation = _orientation_for(query, variations[0])
            size = generation_size_for(orientation)
            logger.info(f"Generating {count} environment variations at {size} (attempt {number})")
            with ThreadPoolExecutor(max_workers=count) as executor:
                futures = [executor.submit(self._render, refined, size) for refined in variations]
                return [(refined, orientation, future.result())
                        for refined, future in zip(variations, futures)]

        results = self._with_retries("Environment variations", attempt)
        return [self._asset(query, refined, orientation, rendered)
                for refined, orientation, rendered in results]


def _category_choices() -> str:
    return "|".join(c.value for c in EnvironmentCategory
                    if c not in (EnvironmentCategory.AI_SUGGESTED, EnvironmentCategory.CUSTOM))


def _require_prompt(query: EnvironmentQuery) -> None:
    if not query.prompt or not query.prompt.strip():
        raise ValidationError("An environment description is required",
                              suggestions=["Describe the room, e.g. \"sunlit scandinavian living room\""])


def _orientation_for(query: EnvironmentQuery, refined: EnvironmentSpec) -> Orientation:
    """Artwork orientation decides the canvas; the model's suggestion is the fallback"""
    if query.dimensions is not None:
        return orientation_for_dimensions(query.dimensions)
    return _orientation_from(refined.orientation) or Orientation.LANDSCAPE
