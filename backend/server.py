"""
Flask application for the Aftercare backend API

Endpoints:
- GET  /health                  liveness
- GET  /brochures               brochure listing (cached)
- GET  /brochures/<id>          brochure content (cached)
- POST /trackers                create tracker record
- GET  /trackers/<patient_id>   newest-first page of tracker records
- POST /admin/cache/clear       drop cached responses

Design principles:
- Application factory; collaborators are passed in, never module globals
- Stateless per request (shared state limited to cache and store clients)
- Every response is JSON, including errors
"""

import logging
import time

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError
from werkzeug.exceptions import HTTPException

from backend.cache import cache_key
from backend.config import ServerConfig
from backend.core.content_store import ContentStore
from backend.core.tracker_record import (
    ERROR_BODY_NOT_OBJECT,
    TrackerRecord,
    document_to_json,
)
from backend.persistence import EchoTrackerStore
from common.timestamps import iso_timestamp

logger = logging.getLogger(__name__)

SERVICE_NAME = "Aftercare Backend API"
DEFAULT_PAGE_LIMIT = 50


def _paging_param(name: str, default: int, errors: list) -> int:
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        errors.append(f"{name} must be a non-negative integer")
        return default
    if value < 0:
        errors.append(f"{name} must be a non-negative integer")
        return default
    return value


def create_app(config: ServerConfig = None, content_store: ContentStore = None,
               tracker_store=None, cache=None) -> Flask:
    """
    Build the Flask application.

    Args:
        config: ServerConfig (defaults to ServerConfig())
        content_store: Brochure content (defaults to bundled data/brochures.json)
        tracker_store: TrackerRepository or EchoTrackerStore (defaults to echo)
        cache: ResponseCache or None (no caching)

    Returns:
        Flask app
    """
    config = config or ServerConfig()
    if content_store is None:
        content_store = (
            ContentStore.from_file(config.brochures_path)
            if config.brochures_path else ContentStore.from_file()
        )
    tracker_store = tracker_store or EchoTrackerStore()

    app = Flask(__name__)
    app.json.sort_keys = False
    app.config['MAX_CONTENT_LENGTH'] = config.max_content_length
    app.extensions['aftercare'] = {
        'config': config,
        'content_store': content_store,
        'tracker_store': tracker_store,
        'cache': cache,
    }

    CORS(app, origins=list(config.cors_origins), supports_credentials=True)
    Limiter(
        get_remote_address,
        app=app,
        default_limits=[config.rate_limit],
        storage_uri="memory://",
        enabled=config.rate_limit_enabled,
    )

    # ========================
    # Request logging
    # ========================

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        started = g.get('request_started')
        duration = (time.perf_counter() - started) * 1000 if started else 0.0
        logger.info(f"{request.remote_addr} {request.method} {request.full_path.rstrip('?')} "
                    f"{response.status_code} {duration:.1f}ms")
        return response

    # ========================
    # Caching
    # ========================

    def serve_cached(ttl, build):
        """
        Serve build() through the response cache.

        build() returns (body, status). Only 200 bodies are cached; hits are
        returned with cached=True and a cacheTimestamp.
        """
        if cache is None or not cache.is_ready:
            body, status = build()
            return jsonify(body), status

        key = cache_key(request.method, request.full_path)
        hit = cache.get(key)
        if hit is not None:
            logger.debug(f"Cache hit for {key}")
            return jsonify({**hit, 'cached': True, 'cacheTimestamp': iso_timestamp()}), 200

        body, status = build()
        if status == 200:
            cache.set(key, body, ttl)
        return jsonify(body), status

    # ========================
    # Routes
    # ========================

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            'status': 'OK',
            'timestamp': iso_timestamp(),
            'service': SERVICE_NAME,
        }), 200

    @app.route('/brochures', methods=['GET'])
    def list_brochures():
        def build():
            return {
                'success': True,
                'data': [summary.to_json() for summary in content_store.list_summaries()],
                'timestamp': iso_timestamp(),
            }, 200

        return serve_cached(config.brochure_list_ttl, build)

    @app.route('/brochures/<brochure_id>', methods=['GET'])
    def get_brochure(brochure_id):
        def build():
            brochure = content_store.get(brochure_id)
            if brochure is None:
                return {
                    'error': 'Brochure not found',
                    'message': f"Brochure content for '{brochure_id}' is not available",
                }, 404
            return {
                'success': True,
                'data': brochure.to_json(),
                'timestamp': iso_timestamp(),
            }, 200

        return serve_cached(config.brochure_detail_ttl, build)

    @app.route('/trackers', methods=['POST'])
    def create_tracker():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return jsonify({
                'error': 'Validation failed',
                'message': 'Invalid tracker data provided',
                'details': [ERROR_BODY_NOT_OBJECT],
            }), 400

        record = TrackerRecord.from_request(body)
        validation = record.validate()
        if not validation.is_valid:
            return jsonify({
                'error': 'Validation failed',
                'message': 'Invalid tracker data provided',
                'details': validation.errors,
            }), 400

        saved = tracker_store.insert(record)

        return jsonify({
            'success': True,
            'data': document_to_json(saved),
            'message': 'Patient tracker entry created successfully',
            'timestamp': iso_timestamp(),
        }), 201

    @app.route('/trackers/<patient_id>', methods=['GET'])
    def list_trackers(patient_id):
        errors = []
        limit = _paging_param('limit', DEFAULT_PAGE_LIMIT, errors)
        offset = _paging_param('offset', 0, errors)
        if errors:
            return jsonify({
                'error': 'Validation failed',
                'message': 'Invalid pagination parameters',
                'details': errors,
            }), 400

        trackers = [document_to_json(doc) for doc in tracker_store.list_for_patient(patient_id, limit, offset)]

        return jsonify({
            'success': True,
            'data': trackers,
            'count': len(trackers),
            'timestamp': iso_timestamp(),
        }), 200

    @app.route('/admin/cache/clear', methods=['POST'])
    def clear_cache():
        if cache is None or not cache.clear():
            return jsonify({
                'error': 'Failed to clear cache',
                'message': 'Cache is not available',
                'timestamp': iso_timestamp(),
            }), 500

        return jsonify({
            'success': True,
            'message': 'Cache cleared successfully',
            'timestamp': iso_timestamp(),
        }), 200

    # ========================
    # Error handlers
    # ========================

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            'error': 'Not found',
            'message': f"Route {request.method} {request.path} not found",
        }), 404

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({
            'error': 'Too many requests',
            'message': 'Too many requests from this IP, please try again later.',
            'retryAfter': f"{config.rate_limit_window_seconds} seconds",
        }), 429

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({
            'error': e.name,
            'message': e.description,
        }), e.code

    @app.errorhandler(DuplicateKeyError)
    def duplicate_entry(e):
        logger.warning(f"Duplicate entry rejected: {e}")
        return jsonify({
            'error': 'Duplicate entry',
            'message': 'A tracker entry with this identifier already exists',
        }), 409

    @app.errorhandler(ConnectionFailure)
    def store_unavailable(e):
        logger.error(f"Database unavailable: {e}")
        return jsonify({
            'error': 'Service unavailable',
            'message': 'Tracker storage is temporarily unavailable',
        }), 503

    @app.errorhandler(PyMongoError)
    def store_error(e):
        logger.error(f"Database error: {e}")
        return jsonify({
            'error': 'Internal server error',
            'message': 'Failed to access tracker storage',
        }), 500

    @app.errorhandler(Exception)
    def unhandled_error(e):
        logger.exception(f"Unhandled error: {e}")
        return jsonify({
            'error': 'Internal server error',
            'message': 'An unexpected error occurred',
        }), 500

    return app
