"""
DICEFAIR — Provably Fair Dice Service
JSON API over the dice platform. Run with ``python web_app.py``.
"""
import logging, os

from config.settings import DiceConfig

# ── Structured logging ──
logging.basicConfig(
    level=getattr(logging, DiceConfig.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("dicefair")

from flask import Flask, request, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from api import dice_bp
from tools.dice_platform import DicePlatform


def create_app(platform: DicePlatform = None) -> Flask:
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)
    app.config["DICE_PLATFORM"] = platform or DicePlatform()
    app.register_blueprint(dice_bp)
    logger.info("Registered dice blueprint at /api/dice/")

    @app.route("/health")
    def health():
        return jsonify({"ok": True, "commitment": app.config["DICE_PLATFORM"].commitment()})

    @app.errorhandler(404)
    def error_404(e):
        return jsonify({"error": "not_found", "message": f"No route for {request.path}"}), 404

    @app.errorhandler(405)
    def error_405(e):
        return jsonify({"error": "method_not_allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def error_500(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({"error": "internal", "message": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    app = create_app()
    logger.info(f"DICEFAIR — http://localhost:{DiceConfig.PORT}")
    app.run(debug=os.getenv("FLASK_DEBUG", "false").lower() == "true",
            host="0.0.0.0", port=DiceConfig.PORT)
