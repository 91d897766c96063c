"""
Flask routes for Mockup Studio
JSON/multipart API around the mockup pipeline and environment sources
"""

import base64
import uuid
from flask import Blueprint, Response, request, current_app, jsonify
from loguru import logger

from .config import get_config
from .dimensions import parse_dimensions
from .environments import EnvironmentQuery, OpenAIEnvironmentSource
from .errors import (
    MockupStudioError, ValidationError, FileTooLargeError, http_status_for
)
from .models import EnvironmentAsset, WallRegion
from .pipeline import build_request


bp = Blueprint('main', __name__)


@bp.errorhandler(MockupStudioError)
def handle_mockup_error(error: MockupStudioError):
    """Serialize pipeline and adapter errors with their mapped status"""
    status = http_status_for(error)
    if status >= 500:
        logger.error(f"{error.__class__.__name__}: {error}")
    else:
        logger.warning(f"{error.__class__.__name__}: {error}")
    return jsonify({'success': False, **error.to_dict()}), status


@bp.route('/api/health', methods=['GET'])
def health():
    config = get_config()
    pool = current_app.extensions['mockup_pool']
    return jsonify({
        'status': 'ok',
        'workers': pool.max_workers,
        'ai_environments': bool(config.OPENAI_API_KEY)
                           or 'environment_generator' in current_app.extensions,
    })


@bp.route('/api/environments/templates', methods=['GET'])
def list_templates():
    """List the template rooms, optionally filtered by ?category="""
    source = current_app.extensions['template_source']
    templates = source.list_templates(request.args.get('category') or None)
    return jsonify({'success': True, 'templates': templates})


@bp.route('/api/mockups', methods=['POST'])
def create_mockup():
    """Composite an uploaded artwork onto an uploaded or template environment"""
    request_id = uuid.uuid4().hex[:12]
    form = request.form

    artwork_file = request.files.get('artwork')
    if artwork_file is None or artwork_file.filename == '':
        raise ValidationError("No artwork file uploaded",
                              suggestions=["Attach the artwork image as the 'artwork' field"])
    artwork_bytes = read_upload(artwork_file)

    environment = resolve_environment(form)

    logger.info(f"Mockup request {request_id} - artwork: {artwork_file.filename}, "
                f"{form.get('width')}x{form.get('height')} {form.get('unit', 'in')}, "
                f"environment: {environment.name}")

    mockup_request = build_request(
        artwork_bytes,
        form.get('width'),
        form.get('height'),
        form.get('unit', 'in'),
        environment,
        frame_style=form.get('frame_style', 'none'),
        frame_width=form.get('frame_width'),
        frame_color=form.get('frame_color'),
        mat_option=form.get('mat_option', 'none'),
        mat_width=form.get('mat_width'),
        artwork_filename=artwork_file.filename,
        output_format=form.get('output_format'),
        request_id=request_id,
    )

    pool = current_app.extensions['mockup_pool']
    result = pool.run(mockup_request, timeout=get_config().REQUEST_TIMEOUT_S)
    logger.debug(f"Mockup request {request_id} served: {result.summary()}")

    response = Response(result.image_bytes, mimetype=result.mime_type)
    response.headers['X-Request-Id'] = request_id
    response.headers['X-Placement-X'] = str(result.placement.x)
    response.headers['X-Placement-Y'] = str(result.placement.y)
    response.headers['X-Placement-Width'] = str(result.placement.width)
    response.headers['X-Placement-Height'] = str(result.placement.height)
    return response


@bp.route('/api/environments/generate', methods=['POST'])
def generate_environment():
    """Generate a blank-wall room from a description"""
    source = environment_generator()
    if source is None:
        return generation_unavailable()

    asset = source.acquire(environment_query(request.get_json(silent=True) or {}))

    return jsonify({
        'success': True,
        'environment': asset.metadata(),
        **encoded_images(asset),
    })


@bp.route('/api/environments/generate-variations', methods=['POST'])
def generate_variations():
    """Generate several distinct rooms for one description; previews only, nothing is saved"""
    source = environment_generator()
    if source is None:
        return generation_unavailable()

    payload = request.get_json(silent=True) or {}
    count = payload.get('count', 3)
    try:
        count = int(count)
    except (TypeError, ValueError):
        raise ValidationError("count must be an integer", details={'count': count})

    assets = source.acquire_variations(environment_query(payload), count)
    logger.info(f"Generated {len(assets)} environment variations")

    return jsonify({
        'success': True,
        'variations': [{**asset.metadata(), **encoded_images(asset)} for asset in assets],
    })


def environment_generator():
    """Injected generator, or a lazily built OpenAI source; None when no key is configured"""
    source = current_app.extensions.get('environment_generator')
    if source is None:
        config = get_config()
        if not config.OPENAI_API_KEY:
            logger.warning("Environment generation requested but OPENAI_API_KEY is not set")
            return None
        source = OpenAIEnvironmentSource(config=config)
        current_app.extensions['environment_generator'] = source
    return source


def generation_unavailable():
    return jsonify({
        'success': False,
        'error_type': 'ServiceUnavailable',
        'message': "AI environment generation is not configured",
        'details': {},
        'suggestions': ["Set OPENAI_API_KEY", "Use a template environment instead"],
    }), 503


def environment_query(payload) -> EnvironmentQuery:
    dimensions = None
    if payload.get('width') is not None or payload.get('height') is not None:
        dimensions = parse_dimensions(payload.get('width'), payload.get('height'),
                                      payload.get('unit', 'in'))

    return EnvironmentQuery(
        prompt=str(payload.get('prompt') or ''),
        dimensions=dimensions,
        category=payload.get('category'),
        artwork_style=payload.get('artwork_style'),
        artwork_mood=payload.get('artwork_mood'),
        artwork_colors=payload.get('artwork_colors'),
        user_id=payload.get('user_id'),
    )


def encoded_images(asset: EnvironmentAsset):
    thumbnail = asset.thumbnail
    return {
        'image_base64': base64.b64encode(asset.data).decode('ascii'),
        'thumbnail_base64': base64.b64encode(thumbnail).decode('ascii') if thumbnail else None,
    }


def read_upload(file) -> bytes:
    """Read an uploaded file, enforcing MAX_UPLOAD_SIZE"""
    data = file.read()
    max_size = get_config().MAX_UPLOAD_SIZE
    if len(data) > max_size:
        raise FileTooLargeError(
            filename=file.filename,
            size_mb=len(data) / (1024 * 1024),
            limit_mb=max_size / (1024 * 1024)
        )
    return data


def resolve_environment(form) -> EnvironmentAsset:
    """Uploaded environment file wins over template_id"""
    environment_file = request.files.get('environment')
    if environment_file is not None and environment_file.filename:
        return EnvironmentAsset(
            data=read_upload(environment_file),
            name=environment_file.filename,
            wall_region=parse_wall_region(form),
            source="upload",
        )

    template_id = (form.get('template_id') or '').strip()
    if not template_id:
        raise ValidationError("An environment file or template_id is required",
                              suggestions=["Upload a room photo as 'environment'",
                                           "Pick a template from /api/environments/templates"])
    source = current_app.extensions['template_source']
    return source.acquire(EnvironmentQuery(template_id=template_id))


def parse_wall_region(form):
    """Optional wall_x/wall_y/wall_width/wall_height form fields"""
    keys = ('wall_x', 'wall_y', 'wall_width', 'wall_height')
    if not any(form.get(k) for k in keys):
        return None
    try:
        x, y, width, height = (int(form.get(k)) for k in keys)
    except (TypeError, ValueError):
        raise ValidationError("wall_x, wall_y, wall_width and wall_height must all be integers",
                              details={k: form.get(k) for k in keys})
    return WallRegion(x, y, width, height)
