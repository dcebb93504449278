from flask import Blueprint

bp = Blueprint("commission", __name__, url_prefix="/commissions")

from . import routes  # noqa: E402,F401
