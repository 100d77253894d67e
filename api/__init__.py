"""
DICEFAIR — HTTP API

Flask blueprint: /api/dice/*
JSON only. The DicePlatform instance is read from
``current_app.config["DICE_PLATFORM"]``.
"""

from flask import Blueprint

dice_bp = Blueprint("dice", __name__, url_prefix="/api/dice")

from api import dice_routes  # noqa: E402, F401
