from flask import Blueprint

bp = Blueprint("escrow", __name__, url_prefix="/escrow")

from . import routes  # noqa: E402,F401
