"""Flask web application for the arrow scoring system."""

from typing import Optional

from flask import Flask, jsonify, request

from ..config_manager import config_to_dict
from ..detection_pipeline import ScoringPipeline
from ..services.error_handler import (
    AlreadyProcessing, CalibrationError, InvalidImage, PipelineCancelled
)
from ..logging_config import get_logger

logger = get_logger("web")

# HTTP status per failure type; anything else is a server-side failure
ERROR_STATUS_CODES = {
    InvalidImage: 400,
    AlreadyProcessing: 409,
    PipelineCancelled: 409,
    CalibrationError: 422,
}


class ScoringWebApp:
    """JSON API in front of a scoring pipeline."""

    def __init__(self, pipeline: ScoringPipeline):
        self.app = Flask(__name__)
        self.pipeline = pipeline

        self.app.config['MAX_CONTENT_LENGTH'] = 32 * 1024 * 1024  # 32MB max photo size

        self._setup_routes()

        logger.info("Arrow scoring web application initialized")

    def _setup_routes(self):
        """Setup Flask routes."""

        @self.app.route('/api/health')
        def api_health():
            return jsonify({'success': True, 'data': {'status': 'ok'}})

        @self.app.route('/api/status')
        def api_status():
            """Get pipeline status."""
            return jsonify({
                'success': True,
                'data': self.pipeline.get_status()
            })

        @self.app.route('/api/config', methods=['GET'])
        def api_get_config():
            """Get the active detection configuration."""
            return jsonify({
                'success': True,
                'data': config_to_dict(self.pipeline.config)
            })

        @self.app.route('/api/score', methods=['POST'])
        def api_score():
            """Score an uploaded target photo.

            The photo is taken from the multipart field ``image`` or, when
            absent, from the raw request body.
            """
            upload = request.files.get('image')
            if upload is not None:
                image_bytes = upload.read()
                image_ref = request.form.get('image_ref') or upload.filename
            else:
                image_bytes = request.get_data()
                image_ref = request.args.get('image_ref')

            if not image_bytes:
                return jsonify({
                    'success': False,
                    'error': 'No image provided',
                    'error_type': 'InvalidImage'
                }), 400

            result = self.pipeline.analyze(image_bytes, image_ref=image_ref)

            if result.succeeded:
                return jsonify({
                    'success': True,
                    'data': result.to_dict()
                })

            status_code = ERROR_STATUS_CODES.get(type(result.error), 500)
            logger.warning(f"Scoring request failed ({status_code}): {result.error}")
            return jsonify({
                'success': False,
                'error': str(result.error),
                'error_type': result.error_type
            }), status_code

        @self.app.errorhandler(413)
        def too_large(error):
            return jsonify({
                'success': False,
                'error': 'Image too large'
            }), 413

    def run(self, host='0.0.0.0', port=5000, debug=False):
        """Run the Flask application."""
        logger.info(f"Starting arrow scoring API on {host}:{port}")
        self.app.run(host=host, port=port, debug=debug, threaded=True)

    def get_app(self):
        """Get the Flask app instance for external WSGI servers."""
        return self.app


def create_app(pipeline: ScoringPipeline) -> Flask:
    """Factory function to create Flask app."""
    web_app = ScoringWebApp(pipeline)
    return web_app.get_app()
