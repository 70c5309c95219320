from flask import Blueprint

bp = Blueprint("feedback", __name__)

# Importing is what registers the routes on bp
from . import routes  # noqa: E402,F401
