"""
extensions.py — Process-wide singletons.

`db` and `ma` are created unbound and attached by create_app() through
init_app(). `feed` needs no app; routes publish to it after a commit and the
balance stream subscribes to it.

    from billbuddy.app.extensions import db, feed
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

from billbuddy.app.realtime import ChangeFeed

db = SQLAlchemy()

# Request schemas in app/schemas/ subclass marshmallow.Schema, not ma.Schema,
# so the unit tests can load them without an application context.
ma = Marshmallow()

feed = ChangeFeed()
